"""
Repository layer between the SQLAlchemy store and the typed records.

Rows are converted into validated records on the way out so the evaluators
never see ORM objects. Repositories add and flush; the calling service
commits once per operation.
"""
from typing import Dict, List, Optional, Sequence
from datetime import date, datetime, timezone
from abc import ABC, abstractmethod

from sqlalchemy.orm import Session

from hrflow.core.errors import RecordNotFound
from hrflow.core.schemas import (
    AllowanceAssignment,
    ApprovalWorkflow,
    DeductionAssignment,
    Employee,
    Installment,
    InstallmentStatus,
    RequestApprovalStep,
    RequestType,
    StepStatus,
    WorkLocation,
    renumber_steps,
)
from hrflow.db import models

HR_ROLES = ("hr", "admin")

class BaseRepository(ABC):
    """Common row access for one ORM model."""

    model = None
    entity_type = None

    def __init__(self, session: Session, tenant_id: str = "system"):
        self.session = session
        self.tenant_id = tenant_id

    def _get_row(self, key):
        row = self.session.get(self.model, key)
        if row is None:
            raise RecordNotFound(f"{self.entity_type} {key} not found")
        return row

    @abstractmethod
    def to_record(self, row):
        """Convert an ORM row into its record type."""

class EmployeesRepository(BaseRepository):
    model = models.Employee
    entity_type = "employee"

    def to_record(self, row) -> Employee:
        return Employee.model_validate(row)

    def get(self, employee_id: str) -> Employee:
        return self.to_record(self._get_row(employee_id))

    def get_active(self, employee_ids: Optional[Sequence[str]] = None) -> List[Employee]:
        q = self.session.query(models.Employee).filter(models.Employee.status == "active")
        if employee_ids:
            q = q.filter(models.Employee.id.in_(list(employee_ids)))
        return [self.to_record(r) for r in q.order_by(models.Employee.id).all()]

    def manager_user_id(self, manager_employee_id: str) -> Optional[str]:
        """Login identity of a manager; None when the manager has no user account."""
        row = self.session.get(models.Employee, manager_employee_id)
        return row.user_id if row is not None else None

class WorkLocationsRepository(BaseRepository):
    model = models.WorkLocation
    entity_type = "work_location"

    def to_record(self, row) -> WorkLocation:
        return WorkLocation.model_validate(row)

    def find(self, location_id: Optional[str]) -> Optional[WorkLocation]:
        if not location_id:
            return None
        row = self.session.get(models.WorkLocation, location_id)
        return self.to_record(row) if row is not None else None

class AllowancesRepository(BaseRepository):
    model = models.EmployeeAllowance
    entity_type = "employee_allowance"
    record_type = AllowanceAssignment

    def to_record(self, row):
        return self.record_type.model_validate(row)

    def for_employee(self, employee_id: str) -> list:
        rows = (self.session.query(self.model)
                .filter(self.model.employee_id == employee_id)
                .order_by(self.model.id).all())
        return [self.to_record(r) for r in rows]

class DeductionsRepository(AllowancesRepository):
    model = models.EmployeeDeduction
    entity_type = "employee_deduction"
    record_type = DeductionAssignment

class WorkflowsRepository(BaseRepository):
    model = models.ApprovalWorkflow
    entity_type = "approval_workflow"

    def to_record(self, row) -> ApprovalWorkflow:
        return ApprovalWorkflow.model_validate(row)

    def _row_for_type(self, request_type: RequestType):
        return (self.session.query(models.ApprovalWorkflow)
                .filter_by(request_type=RequestType(request_type).value)
                .one_or_none())

    def get_for_type(self, request_type: RequestType) -> Optional[ApprovalWorkflow]:
        row = self._row_for_type(request_type)
        return self.to_record(row) if row is not None else None

    def save(self, workflow: ApprovalWorkflow, updated_by: Optional[str] = None) -> ApprovalWorkflow:
        """Store the workflow for its request type, renumbering the steps."""
        steps = [s.model_dump(mode="json") for s in renumber_steps(workflow.steps)]
        row = self._row_for_type(workflow.request_type)
        if row is None:
            row = models.ApprovalWorkflow(
                id=workflow.id or f"wf_{workflow.request_type.value}",
                request_type=workflow.request_type.value,
            )
            self.session.add(row)
        row.is_active = workflow.is_active
        row.steps = steps
        row.default_hr_approver_id = workflow.default_hr_approver_id
        row.updated_by = updated_by
        row.updated_at = datetime.now(timezone.utc)
        self.session.flush()
        return self.to_record(row)

    def hr_user_ids(self) -> List[str]:
        rows = (self.session.query(models.UserRole)
                .filter(models.UserRole.role.in_(HR_ROLES))
                .order_by(models.UserRole.created_at, models.UserRole.user_id)
                .all())
        seen = []
        for r in rows:
            if r.user_id not in seen:
                seen.append(r.user_id)
        return seen

class ApprovalRequestsRepository(BaseRepository):
    model = models.ApprovalRequest
    entity_type = "approval_request"

    def to_record(self, row) -> RequestApprovalStep:
        return RequestApprovalStep.model_validate(row)

    def get_row(self, request_id: str, request_type: RequestType):
        return self._get_row((request_id, RequestType(request_type).value))

    def exists(self, request_id: str, request_type: RequestType) -> bool:
        return self.session.get(self.model, (request_id, RequestType(request_type).value)) is not None

    def create(self, request_id: str, request_type: RequestType, employee_id: str,
               state: str, status: str, total_steps: int,
               steps: Sequence[RequestApprovalStep] = ()):
        row = models.ApprovalRequest(
            id=request_id,
            request_type=RequestType(request_type).value,
            employee_id=employee_id,
            state=state,
            status=status,
            total_steps=total_steps,
            submitted_at=datetime.now(timezone.utc),
        )
        self.session.add(row)
        for s in steps:
            self.session.add(models.RequestApprovalStep(**s.model_dump(mode="json", exclude={"acted_at"})))
        self.session.flush()
        return row

    def step_rows(self, request_id: str, request_type: RequestType) -> list:
        return (self.session.query(models.RequestApprovalStep)
                .filter_by(request_id=request_id, request_type=RequestType(request_type).value)
                .order_by(models.RequestApprovalStep.step_number)
                .all())

    def steps(self, request_id: str, request_type: RequestType) -> List[RequestApprovalStep]:
        return [self.to_record(r) for r in self.step_rows(request_id, request_type)]

    def pending_for(self, user_id: str) -> List[RequestApprovalStep]:
        rows = (self.session.query(models.RequestApprovalStep)
                .filter_by(approver_user_id=user_id, status=StepStatus.PENDING.value)
                .order_by(models.RequestApprovalStep.created_at, models.RequestApprovalStep.id)
                .all())
        return [self.to_record(r) for r in rows]

class LoansRepository(BaseRepository):
    model = models.Loan
    entity_type = "loan"

    def to_record(self, row) -> Installment:
        return Installment.model_validate(row)

    def get_row(self, loan_id: str):
        return self._get_row(loan_id)

    def schedule(self, loan_id: str) -> List[Installment]:
        rows = (self.session.query(models.LoanInstallment)
                .filter_by(loan_id=loan_id)
                .order_by(models.LoanInstallment.installment_number)
                .all())
        return [self.to_record(r) for r in rows]

    def save_schedule(self, loan_id: str, schedule: Sequence[Installment],
                      paid_in_period: Optional[str] = None) -> None:
        """Write back a schedule: existing installments are updated, new ones inserted."""
        existing = {
            r.installment_number: r
            for r in self.session.query(models.LoanInstallment).filter_by(loan_id=loan_id).all()
        }
        for inst in schedule:
            row = existing.get(inst.installment_number)
            if row is None:
                row = models.LoanInstallment(loan_id=loan_id, installment_number=inst.installment_number)
                self.session.add(row)
            elif row.status != InstallmentStatus.PAID.value and inst.status == InstallmentStatus.PAID:
                row.paid_in_period = paid_in_period
            row.due_date = inst.due_date
            row.amount = inst.amount
            row.status = inst.status.value
            row.skipped_reason = inst.skipped_reason
            row.rescheduled_from = inst.rescheduled_from
            row.schedule_version = inst.schedule_version
        self.session.flush()

    def add_event(self, loan_id: str, event_type: str, effective_date: date,
                  created_by: Optional[str] = None, **fields) -> models.LoanEvent:
        event = models.LoanEvent(loan_id=loan_id, event_type=event_type,
                                 effective_date=effective_date, created_by=created_by, **fields)
        self.session.add(event)
        self.session.flush()
        return event

    def events(self, loan_id: str) -> List[models.LoanEvent]:
        return (self.session.query(models.LoanEvent)
                .filter_by(loan_id=loan_id)
                .order_by(models.LoanEvent.id)
                .all())

    def active_schedules_for(self, employee_id: str) -> Dict[str, List[Installment]]:
        loans = (self.session.query(models.Loan)
                 .filter_by(employee_id=employee_id, status="active")
                 .order_by(models.Loan.id)
                 .all())
        return {loan.id: self.schedule(loan.id) for loan in loans}
