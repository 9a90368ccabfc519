import logging
from dataclasses import dataclass, field, asdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from hrflow.core.config import settings
from hrflow.core.errors import DegradedReason
from hrflow.core.schemas import (
    AllowanceAssignment,
    AmountType,
    DeductionAssignment,
    Employee,
    Installment,
    InstallmentStatus,
    LineAssignment,
    WorkLocation,
)
from hrflow.core.utils import Number, round_money, to_decimal
from hrflow.tax.gosi import GosiResult, compute_gosi

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
SUPPORTED_PERCENTAGE_BASES = ("base_salary",)


@dataclass(frozen=True)
class LineResult:
    amount: Decimal
    reason: Optional[DegradedReason] = None


@dataclass
class PayLine:
    name: str
    kind: str
    amount: Decimal


@dataclass
class CompensationBreakdown:
    employee_id: str
    currency: str
    base_salary: Decimal
    total_allowances: Decimal
    gross_pay: Decimal
    total_deductions: Decimal
    gosi_deduction: Decimal
    gosi_employer_contribution: Decimal
    net_pay: Decimal
    lines: List[PayLine] = field(default_factory=list)
    degraded: List[str] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)


class CompensationCalculator:
    """Pure pay arithmetic for one employee. Missing setup data counts as 0, never raises."""

    def resolve_line(self, assignment: LineAssignment, base_salary: Number) -> LineResult:
        # presence of a custom amount wins, even when it is 0
        if assignment.custom_amount is not None:
            return LineResult(to_decimal(assignment.custom_amount))
        base = to_decimal(base_salary)
        if assignment.percentage is not None and assignment.percentage > 0:
            return LineResult(base * assignment.percentage / 100)
        template = assignment.template
        if template is None:
            return LineResult(ZERO, DegradedReason.MISSING_TEMPLATE)
        if template.amount_type == AmountType.PERCENTAGE:
            if template.percentage_of in SUPPORTED_PERCENTAGE_BASES:
                return LineResult(base * template.amount / 100)
            return LineResult(ZERO, DegradedReason.UNSUPPORTED_PERCENTAGE_BASE)
        return LineResult(to_decimal(template.amount))

    def resolve_line_amount(self, assignment: LineAssignment, base_salary: Number) -> Decimal:
        return self.resolve_line(assignment, base_salary).amount

    def total_allowances(self, assignments: Iterable[AllowanceAssignment], base_salary: Number,
                         as_of: Optional[date] = None) -> Decimal:
        return self._total(assignments, base_salary, as_of)

    def total_deductions(self, assignments: Iterable[DeductionAssignment], base_salary: Number,
                         as_of: Optional[date] = None) -> Decimal:
        """Sum of configured deductions. GOSI is computed separately."""
        return self._total(assignments, base_salary, as_of)

    def compute_gosi_deduction(self, employee: Employee, work_location: Optional[WorkLocation]) -> Decimal:
        return compute_gosi(employee, work_location).employee_share

    def compute_gross_pay(self, employee: Employee, allowances: Iterable[AllowanceAssignment],
                          as_of: Optional[date] = None) -> Decimal:
        return to_decimal(employee.base_salary) + self.total_allowances(allowances, employee.base_salary, as_of)

    def compute_net_pay(self, gross: Number, deductions: Number, gosi: Number) -> Decimal:
        return to_decimal(gross) - to_decimal(deductions) - to_decimal(gosi)

    def breakdown(
        self,
        employee: Employee,
        allowances: Sequence[AllowanceAssignment],
        deductions: Sequence[DeductionAssignment],
        work_location: Optional[WorkLocation] = None,
        as_of: Optional[date] = None,
    ) -> CompensationBreakdown:
        base = to_decimal(employee.base_salary)
        degraded: List[str] = []
        lines: List[PayLine] = []

        total_allow = self._collect(allowances, base, as_of, lines, degraded)
        total_ded = self._collect(deductions, base, as_of, lines, degraded)

        gosi: GosiResult = compute_gosi(employee, work_location)
        if gosi.degraded:
            degraded.append(gosi.reason.value)
        if gosi.employee_share:
            lines.append(PayLine("GOSI", "gosi", gosi.employee_share))

        gross = base + total_allow
        net = self.compute_net_pay(gross, total_ded, gosi.employee_share)
        if net < 0:
            logger.warning("Negative net pay %s for employee %s", net, employee.id)
            degraded.append(DegradedReason.NEGATIVE_NET_PAY.value)

        return CompensationBreakdown(
            employee_id=employee.id,
            currency=self._currency(employee, work_location),
            base_salary=base,
            total_allowances=total_allow,
            gross_pay=gross,
            total_deductions=total_ded,
            gosi_deduction=gosi.employee_share,
            gosi_employer_contribution=gosi.employer_share,
            net_pay=net,
            lines=lines,
            degraded=degraded,
        )

    def _total(self, assignments, base_salary, as_of) -> Decimal:
        total = ZERO
        for a in assignments:
            if as_of is not None and not a.is_active_on(as_of):
                continue
            total += self.resolve_line(a, base_salary).amount
        return total

    def _collect(self, assignments, base, as_of, lines, degraded) -> Decimal:
        total = ZERO
        for a in assignments:
            if as_of is not None and not a.is_active_on(as_of):
                continue
            result = self.resolve_line(a, base)
            if result.reason is not None:
                logger.warning("%s %s resolved to 0: %s", a.kind, a.id or a.name, result.reason.value)
                degraded.append(result.reason.value)
            lines.append(PayLine(a.name, a.kind, result.amount))
            total += result.amount
        return total

    @staticmethod
    def _currency(employee: Employee, work_location: Optional[WorkLocation]) -> str:
        if employee.salary_currency_code:
            return employee.salary_currency_code
        if work_location is not None and work_location.currency:
            return work_location.currency
        return settings.DEFAULT_CURRENCY


@dataclass
class Payslip:
    employee_id: str
    name: str
    period_start: date
    period_end: date
    compensation: CompensationBreakdown
    loan_deduction: Decimal = ZERO
    loan_installments: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def net_pay(self) -> Decimal:
        return self.compensation.net_pay - self.loan_deduction

    def to_row(self) -> Dict[str, object]:
        c = self.compensation
        cur = c.currency
        return {
            "employee_id": self.employee_id,
            "name": self.name,
            "currency": cur,
            "base_salary": float(round_money(c.base_salary, cur)),
            "allowances": float(round_money(c.total_allowances, cur)),
            "gross": float(round_money(c.gross_pay, cur)),
            "deductions": float(round_money(c.total_deductions, cur)),
            "gosi": float(round_money(c.gosi_deduction, cur)),
            "gosi_employer": float(round_money(c.gosi_employer_contribution, cur)),
            "loan": float(round_money(self.loan_deduction, cur)),
            "net": float(round_money(self.net_pay, cur)),
            "degraded": ",".join(c.degraded),
        }


class PayrollEngine:
    def __init__(self, tenant_id: str, calculator: CompensationCalculator = None):
        self.tenant_id = tenant_id
        self.calculator = calculator or CompensationCalculator()

    def compute_payslip(
        self,
        employee: Employee,
        allowances: Sequence[AllowanceAssignment],
        deductions: Sequence[DeductionAssignment],
        work_location: Optional[WorkLocation],
        period_start: date,
        period_end: date,
        loan_schedules: Optional[Dict[str, Sequence[Installment]]] = None,
    ) -> Payslip:
        """loan_schedules maps loan id to its installments; those due in the period are deducted."""
        comp = self.calculator.breakdown(employee, allowances, deductions, work_location, as_of=period_end)
        due = [
            (loan_id, inst)
            for loan_id, schedule in (loan_schedules or {}).items()
            for inst in schedule
            if inst.status == InstallmentStatus.DUE and period_start <= inst.due_date <= period_end
        ]
        loan_total = sum((to_decimal(inst.amount) for _, inst in due), ZERO)
        if loan_total:
            comp.lines.append(PayLine("Loan repayment", "loan", loan_total))
        return Payslip(
            employee_id=employee.id,
            name=employee.full_name or employee.id,
            period_start=period_start,
            period_end=period_end,
            compensation=comp,
            loan_deduction=loan_total,
            loan_installments=[(loan_id, inst.installment_number) for loan_id, inst in due],
        )
