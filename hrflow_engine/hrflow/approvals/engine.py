"""
Approval routing for employee requests.

A workflow is configured once per request type:
{
  "request_type": "time_off",
  "is_active": true,
  "steps": [
      {"step": 1, "approver": "manager", "fallback": "hr"},
      {"step": 2, "approver": "specific_user", "specific_user_id": "<user id>"}
  ],
  "default_hr_approver_id": "<user id>"
}

Each request then walks pending_step_1 -> ... -> approved, or stops at
rejected. The request keeps the step count it was created with, so editing
the workflow later never renumbers requests already in flight.
"""
from typing import Callable, List, Optional, Sequence

from hrflow.core.errors import ConfigurationError, InvalidTransition, NoApproverResolvable
from hrflow.core.schemas import (
    ApprovalWorkflow,
    ApproverType,
    Employee,
    FallbackType,
    RequestApprovalStep,
    RequestType,
    StepStatus,
)

APPROVED = "approved"
REJECTED = "rejected"
TERMINAL_STATES = (APPROVED, REJECTED)

# Final status written on the subject request when no approval is needed.
AUTO_APPROVED_STATUS = {
    RequestType.TIME_OFF: "approved",
    RequestType.BUSINESS_TRIP: "hr_approved",
    RequestType.LOAN: "approved",
    RequestType.HR_LETTER: "approved",
}

ManagerLookup = Callable[[str], Optional[str]]


def pending_state(step_index: int) -> str:
    return f"pending_step_{step_index}"


class ApprovalRequest:
    """State of one request moving through its approval steps."""

    def __init__(self, request_type: RequestType, total_steps: int, state: Optional[str] = None):
        self.request_type = RequestType(request_type)
        self.total_steps = total_steps
        if state is None:
            state = pending_state(1) if total_steps > 0 else APPROVED
        self.state = state

    @classmethod
    def start(cls, workflow: ApprovalWorkflow, resolver: "WorkflowResolver" = None) -> "ApprovalRequest":
        resolver = resolver or WorkflowResolver()
        if not resolver.is_approval_required(workflow):
            return cls(workflow.request_type, 0, APPROVED)
        return cls(workflow.request_type, len(workflow.steps))

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def current_step(self) -> Optional[int]:
        if self.is_terminal:
            return None
        return int(self.state.rsplit("_", 1)[1])

    def approve(self) -> str:
        if self.is_terminal:
            raise InvalidTransition(self.state, "approve")
        step = self.current_step
        self.state = pending_state(step + 1) if step < self.total_steps else APPROVED
        return self.state

    def reject(self) -> str:
        if self.is_terminal:
            raise InvalidTransition(self.state, "reject")
        self.state = REJECTED
        return self.state

    def __repr__(self):
        return f"<ApprovalRequest {self.request_type.value} {self.state} of {self.total_steps}>"


class WorkflowResolver:
    """Pure approver resolution over a workflow snapshot."""

    def is_approval_required(self, workflow: ApprovalWorkflow) -> bool:
        return bool(workflow.is_active and workflow.steps)

    def auto_approved_status(self, request_type: RequestType) -> str:
        return AUTO_APPROVED_STATUS[RequestType(request_type)]

    def next_step(self, workflow: ApprovalWorkflow, current_step_index: int) -> Optional[int]:
        nxt = current_step_index + 1
        return nxt if nxt <= len(workflow.steps) else None

    def resolve_approver(
        self,
        workflow: ApprovalWorkflow,
        step_index: int,
        subject: Employee,
        *,
        manager_lookup: ManagerLookup = None,
        hr_user_ids: Sequence[str] = (),
    ) -> str:
        """
        Return the user id that has to act on the given step.

        manager_lookup maps the subject's manager (an employee id) to the
        identity that approves; without it the manager id is used as is.
        hr_user_ids is the caller's list of HR/admin users, tried after the
        workflow's default HR approver.
        """
        return self._resolve(workflow, step_index, subject, manager_lookup, hr_user_ids)[0]

    def effective_approver_type(
        self,
        workflow: ApprovalWorkflow,
        step_index: int,
        subject: Employee,
        *,
        manager_lookup: ManagerLookup = None,
        hr_user_ids: Sequence[str] = (),
    ) -> ApproverType:
        return self._resolve(workflow, step_index, subject, manager_lookup, hr_user_ids)[1]

    def build_plan(
        self,
        workflow: ApprovalWorkflow,
        request_id: str,
        subject: Employee,
        *,
        manager_lookup: ManagerLookup = None,
        hr_user_ids: Sequence[str] = (),
    ) -> List[RequestApprovalStep]:
        """Resolve every step up front: the first is pending, the rest queued."""
        plan = []
        for step in workflow.steps:
            approver_id, approver_type = self._resolve(workflow, step.step, subject, manager_lookup, hr_user_ids)
            plan.append(RequestApprovalStep(
                request_id=request_id,
                request_type=workflow.request_type,
                step_number=step.step,
                approver_type=approver_type,
                approver_user_id=approver_id,
                status=StepStatus.PENDING if not plan else StepStatus.QUEUED,
            ))
        return plan

    def _resolve(self, workflow, step_index, subject, manager_lookup, hr_user_ids):
        step = workflow.get_step(step_index)
        request_type = workflow.request_type.value

        if step.approver == ApproverType.SPECIFIC_USER:
            if not step.specific_user_id:
                raise ConfigurationError(f"{request_type} step {step_index}: specific_user step has no user assigned")
            return step.specific_user_id, ApproverType.SPECIFIC_USER

        if step.approver == ApproverType.HR:
            return self._resolve_hr(workflow, step_index, hr_user_ids), ApproverType.HR

        # manager
        manager = subject.manager_id
        if manager and manager_lookup is not None:
            manager = manager_lookup(manager)
        if manager:
            return manager, ApproverType.MANAGER
        if step.fallback == FallbackType.HR:
            return self._resolve_hr(workflow, step_index, hr_user_ids), ApproverType.HR
        raise NoApproverResolvable(request_type, step_index, ApproverType.MANAGER.value,
                                   f"employee {subject.id} has no manager and the step has no fallback")

    def _resolve_hr(self, workflow, step_index, hr_user_ids):
        if workflow.default_hr_approver_id:
            return workflow.default_hr_approver_id
        for user_id in hr_user_ids:
            if user_id:
                return user_id
        raise NoApproverResolvable(workflow.request_type.value, step_index, ApproverType.HR.value,
                                   "no default HR approver configured")
