"""
Typed records for everything the evaluators read.

Rows coming out of the store are validated here, once, so the approval
resolver and the compensation calculator can trust their inputs.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from hrflow.core.config import settings
from hrflow.core.errors import ConfigurationError


class RequestType(str, Enum):
    TIME_OFF = "time_off"
    LOAN = "loan"
    HR_LETTER = "hr_letter"
    BUSINESS_TRIP = "business_trip"


class ApproverType(str, Enum):
    MANAGER = "manager"
    HR = "hr"
    SPECIFIC_USER = "specific_user"


class FallbackType(str, Enum):
    HR = "hr"


class StepStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class AmountType(str, Enum):
    FLAT = "flat"
    PERCENTAGE = "percentage"


class InstallmentStatus(str, Enum):
    DUE = "due"
    PAID = "paid"
    SKIPPED = "skipped"


class Record(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


# -- approvals -----------------------------------------------------------------

class ApprovalStep(Record):
    step: int = Field(..., ge=1)
    approver: ApproverType
    specific_user_id: Optional[str] = None
    fallback: Optional[FallbackType] = None

    @model_validator(mode="after")
    def _specific_user_needs_id(self):
        if self.approver == ApproverType.SPECIFIC_USER and not self.specific_user_id:
            raise ValueError(f"step {self.step}: specific_user approver requires specific_user_id")
        return self


class ApprovalWorkflow(Record):
    id: Optional[str] = None
    request_type: RequestType
    is_active: bool = True
    steps: List[ApprovalStep] = Field(default_factory=list)
    default_hr_approver_id: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    @field_validator("steps")
    @classmethod
    def _steps_contiguous(cls, steps: List[ApprovalStep]) -> List[ApprovalStep]:
        if len(steps) > settings.MAX_WORKFLOW_STEPS:
            raise ValueError(f"a workflow has at most {settings.MAX_WORKFLOW_STEPS} steps, got {len(steps)}")
        for position, step in enumerate(steps, start=1):
            if step.step != position:
                raise ValueError(f"step numbers must be contiguous from 1; position {position} has step {step.step}")
        return steps

    def get_step(self, step_index: int) -> ApprovalStep:
        if step_index < 1 or step_index > len(self.steps):
            raise ConfigurationError(f"{self.request_type.value} workflow has no step {step_index}")
        return self.steps[step_index - 1]


def renumber_steps(steps: List[ApprovalStep]) -> List[ApprovalStep]:
    """Give edited steps contiguous numbers in their current order."""
    return [s.model_copy(update={"step": i}) for i, s in enumerate(steps, start=1)]


class RequestApprovalStep(Record):
    request_id: str
    request_type: RequestType
    step_number: int
    approver_type: ApproverType
    approver_user_id: str
    status: StepStatus = StepStatus.QUEUED
    comment: Optional[str] = None
    acted_at: Optional[datetime] = None


# -- people & places -----------------------------------------------------------

class Employee(Record):
    id: str
    user_id: Optional[str] = None
    manager_id: Optional[str] = None
    nationality: Optional[str] = None
    base_salary: Decimal = Decimal("0")
    gosi_registered_salary: Optional[Decimal] = None
    is_subject_to_gosi: bool = False
    work_location_id: Optional[str] = None
    salary_currency_code: Optional[str] = None
    full_name: Optional[str] = None


class GosiNationalityRate(Record):
    nationality: str
    employee_rate: Optional[Decimal] = Field(None, validation_alias=AliasChoices("employee_rate", "employeeRate"))
    employer_rate: Optional[Decimal] = Field(None, validation_alias=AliasChoices("employer_rate", "employerRate"))
    # legacy single-rate rows: employee share only
    percentage: Optional[Decimal] = None

    @property
    def resolved_employee_rate(self) -> Decimal:
        if self.employee_rate is not None:
            return self.employee_rate
        if self.percentage is not None:
            return self.percentage
        return Decimal("0")

    @property
    def resolved_employer_rate(self) -> Decimal:
        return self.employer_rate if self.employer_rate is not None else Decimal("0")


class WorkLocation(Record):
    id: Optional[str] = None
    name: Optional[str] = None
    currency: Optional[str] = None
    gosi_enabled: bool = False
    gosi_nationality_rates: List[GosiNationalityRate] = Field(default_factory=list)

    @field_validator("gosi_nationality_rates", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return v or []


# -- compensation lines --------------------------------------------------------

class LineTemplate(Record):
    id: Optional[str] = None
    name: str = ""
    amount: Decimal = Decimal("0")
    amount_type: AmountType = AmountType.FLAT
    percentage_of: Optional[str] = None


class LineAssignment(Record):
    kind: ClassVar[str] = "line"

    id: Optional[str] = None
    employee_id: Optional[str] = None
    template: Optional[LineTemplate] = None
    custom_amount: Optional[Decimal] = None
    custom_name: Optional[str] = None
    percentage: Optional[Decimal] = None
    effective_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def name(self) -> str:
        if self.custom_name:
            return self.custom_name
        if self.template is not None and self.template.name:
            return self.template.name
        return self.kind.title()

    def is_active_on(self, as_of: date) -> bool:
        if self.effective_date is not None and as_of < self.effective_date:
            return False
        return self.end_date is None or as_of <= self.end_date


class AllowanceAssignment(LineAssignment):
    kind: ClassVar[str] = "allowance"


class DeductionAssignment(LineAssignment):
    kind: ClassVar[str] = "deduction"


# -- loans ---------------------------------------------------------------------

class Installment(Record):
    installment_number: int = Field(..., ge=1)
    due_date: date
    amount: Decimal
    status: InstallmentStatus = InstallmentStatus.DUE
    skipped_reason: Optional[str] = None
    rescheduled_from: Optional[int] = None
    schedule_version: int = 1
