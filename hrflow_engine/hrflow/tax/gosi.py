"""
GOSI (social insurance) contributions.

The work location switches GOSI on or off and carries one rate row per
nationality. The employee share is withheld from pay; the employer share is
a company cost reported next to it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from hrflow.core.errors import DegradedReason
from hrflow.core.schemas import Employee, GosiNationalityRate, WorkLocation
from hrflow.core.utils import to_decimal
from hrflow.tax.countries import get_country_code_by_name

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class GosiResult:
    employee_share: Decimal = ZERO
    employer_share: Decimal = ZERO
    base: Decimal = ZERO
    employee_rate: Decimal = ZERO
    employer_rate: Decimal = ZERO
    nationality_code: Optional[str] = None
    reason: Optional[DegradedReason] = None

    @property
    def degraded(self) -> bool:
        """True when configuration data was missing, not when GOSI simply does not apply."""
        return self.reason in (
            DegradedReason.MISSING_WORK_LOCATION,
            DegradedReason.MISSING_GOSI_BASE,
            DegradedReason.MISSING_GOSI_RATE,
        )


def gosi_base(employee: Employee) -> Decimal:
    if employee.gosi_registered_salary is not None:
        return to_decimal(employee.gosi_registered_salary)
    return to_decimal(employee.base_salary)


def find_rate(work_location: WorkLocation, nationality: Optional[str]) -> Optional[GosiNationalityRate]:
    if not nationality:
        return None
    raw = nationality.strip().upper()
    code = get_country_code_by_name(nationality) or raw
    for rate in work_location.gosi_nationality_rates:
        rate_raw = rate.nationality.strip().upper()
        if (get_country_code_by_name(rate.nationality) or rate_raw) == code or rate_raw == raw:
            return rate
    return None


def compute_gosi(employee: Employee, work_location: Optional[WorkLocation]) -> GosiResult:
    if not employee.is_subject_to_gosi:
        return GosiResult(reason=DegradedReason.NOT_SUBJECT_TO_GOSI)
    if work_location is None:
        logger.warning("GOSI skipped for employee %s: no work location", employee.id)
        return GosiResult(reason=DegradedReason.MISSING_WORK_LOCATION)
    if not work_location.gosi_enabled:
        return GosiResult(reason=DegradedReason.GOSI_DISABLED)

    base = gosi_base(employee)
    if not base:
        logger.warning("GOSI skipped for employee %s: no registered or base salary", employee.id)
        return GosiResult(reason=DegradedReason.MISSING_GOSI_BASE)

    rate = find_rate(work_location, employee.nationality)
    if rate is None:
        logger.warning(
            "GOSI skipped for employee %s: no rate for nationality %r at location %s",
            employee.id, employee.nationality, work_location.id,
        )
        return GosiResult(base=base, reason=DegradedReason.MISSING_GOSI_RATE)

    employee_rate = rate.resolved_employee_rate
    employer_rate = rate.resolved_employer_rate
    return GosiResult(
        employee_share=base * employee_rate / 100,
        employer_share=base * employer_rate / 100,
        base=base,
        employee_rate=employee_rate,
        employer_rate=employer_rate,
        nationality_code=get_country_code_by_name(rate.nationality) or rate.nationality.strip().upper(),
    )


def compute_gosi_deduction(employee: Employee, work_location: Optional[WorkLocation]) -> Decimal:
    return compute_gosi(employee, work_location).employee_share
