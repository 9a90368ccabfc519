"""
Approval requests over the store.

ApprovalManager loads the workflow and the subject employee, lets the
resolver plan every step, and persists one row per step. Decisions move the
pending step forward and are written to the audit trail.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from hrflow.approvals.engine import APPROVED, REJECTED, ApprovalRequest, WorkflowResolver
from hrflow.core.audit import AuditLogger
from hrflow.core.errors import InvalidTransition, NoApproverResolvable, NotCurrentApprover
from hrflow.core.repositories import ApprovalRequestsRepository, EmployeesRepository, WorkflowsRepository
from hrflow.core.schemas import ApprovalWorkflow, RequestApprovalStep, RequestType, StepStatus
from hrflow.core.utils import setup_logging

IN_PROGRESS_STATUS = "pending"


@dataclass
class ApprovalOutcome:
    request_id: str
    request_type: RequestType
    state: str
    status: str
    pending_approver_id: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.state in (APPROVED, REJECTED)


class ApprovalManager:
    def __init__(self, session: Session, tenant_id: str = "system", audit: AuditLogger = None,
                 resolver: WorkflowResolver = None):
        self.session = session
        self.tenant_id = tenant_id
        self.audit = audit or AuditLogger(tenant_id)
        self.resolver = resolver or WorkflowResolver()
        self.logger = setup_logging(tenant_id)
        self.workflows = WorkflowsRepository(session, tenant_id)
        self.employees = EmployeesRepository(session, tenant_id)
        self.requests = ApprovalRequestsRepository(session, tenant_id)

    def configure_workflow(self, workflow: ApprovalWorkflow, updated_by: Optional[str] = None) -> ApprovalWorkflow:
        saved = self.workflows.save(workflow, updated_by=updated_by)
        self.session.commit()
        self.audit.log_event("approval_workflow", "configure", saved.request_type.value,
                             {"is_active": saved.is_active, "steps": len(saved.steps)}, user_id=updated_by)
        return saved

    def initiate(self, request_id: str, request_type: RequestType, employee_id: str) -> ApprovalOutcome:
        request_type = RequestType(request_type)
        if self.requests.exists(request_id, request_type):
            raise InvalidTransition("submitted", "initiate")
        subject = self.employees.get(employee_id)
        workflow = self.workflows.get_for_type(request_type)

        if workflow is None or not self.resolver.is_approval_required(workflow):
            status = self.resolver.auto_approved_status(request_type)
            self.requests.create(request_id, request_type, employee_id, APPROVED, status, 0)
            self.session.commit()
            self.logger.info("%s %s auto-approved (%s)", request_type.value, request_id, status)
            self.audit.log_event(request_type.value, "auto_approve", request_id, {"status": status})
            return ApprovalOutcome(request_id, request_type, APPROVED, status)

        try:
            plan = self.resolver.build_plan(
                workflow, request_id, subject,
                manager_lookup=self.employees.manager_user_id,
                hr_user_ids=self.workflows.hr_user_ids(),
            )
        except NoApproverResolvable as exc:
            self.logger.error("Cannot route %s %s: %s", request_type.value, request_id, exc)
            raise

        request = ApprovalRequest.start(workflow, self.resolver)
        self.requests.create(request_id, request_type, employee_id, request.state,
                             IN_PROGRESS_STATUS, request.total_steps, plan)
        self.session.commit()
        first = plan[0].approver_user_id
        self.logger.info("%s %s submitted, %d step(s), first approver %s",
                         request_type.value, request_id, request.total_steps, first)
        self.audit.log_event(request_type.value, "initiate", request_id, {
            "steps": [(s.step_number, s.approver_type.value, s.approver_user_id) for s in plan],
        }, user_id=subject.user_id)
        return ApprovalOutcome(request_id, request_type, request.state, IN_PROGRESS_STATUS, first)

    def approve(self, request_id: str, request_type: RequestType, actor_id: str,
                comment: Optional[str] = None) -> ApprovalOutcome:
        row, request, steps, current = self._load_for_decision(request_id, request_type, actor_id, "approve")
        current.status = StepStatus.APPROVED.value
        current.comment = comment
        current.acted_at = datetime.now(timezone.utc)

        row.state = request.approve()
        nxt = None
        if request.is_terminal:
            row.status = self.resolver.auto_approved_status(request.request_type)
            row.decided_at = current.acted_at
        else:
            nxt = next(s for s in steps if s.step_number == request.current_step)
            nxt.status = StepStatus.PENDING.value
        self.session.commit()

        self.audit.log_event(request.request_type.value, "approve", request_id, {
            "step": current.step_number, "state": row.state, "comment": comment,
        }, user_id=actor_id)
        return ApprovalOutcome(request_id, request.request_type, row.state, row.status,
                               nxt.approver_user_id if nxt is not None else None)

    def reject(self, request_id: str, request_type: RequestType, actor_id: str,
               comment: Optional[str] = None) -> ApprovalOutcome:
        row, request, steps, current = self._load_for_decision(request_id, request_type, actor_id, "reject")
        now = datetime.now(timezone.utc)
        current.status = StepStatus.REJECTED.value
        current.comment = comment
        current.acted_at = now
        for s in steps:
            if s.status == StepStatus.QUEUED.value:
                s.status = StepStatus.CANCELLED.value

        row.state = request.reject()
        row.status = REJECTED
        row.decided_at = now
        self.session.commit()

        self.audit.log_event(request.request_type.value, "reject", request_id, {
            "step": current.step_number, "comment": comment,
        }, user_id=actor_id)
        return ApprovalOutcome(request_id, request.request_type, row.state, row.status)

    def pending_for(self, user_id: str) -> List[RequestApprovalStep]:
        return self.requests.pending_for(user_id)

    def steps(self, request_id: str, request_type: RequestType) -> List[RequestApprovalStep]:
        return self.requests.steps(request_id, request_type)

    def _load_for_decision(self, request_id, request_type, actor_id, action):
        row = self.requests.get_row(request_id, request_type)
        request = ApprovalRequest(row.request_type, row.total_steps, row.state)
        if request.is_terminal:
            raise InvalidTransition(row.state, action)
        steps = self.requests.step_rows(request_id, request_type)
        current = next(s for s in steps if s.step_number == request.current_step)
        if current.approver_user_id != actor_id:
            self.logger.warning("%s tried to %s %s %s; pending approver is %s",
                                actor_id, action, row.request_type, request_id, current.approver_user_id)
            raise NotCurrentApprover(actor_id, current.approver_user_id)
        return row, request, steps, current
