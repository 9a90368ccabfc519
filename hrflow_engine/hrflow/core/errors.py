"""
Error taxonomy for approval routing, compensation and loan scheduling.

Configuration problems and invalid transitions are raised; degraded
compensation lookups are not errors and are reported as DegradedReason codes.
"""
from enum import Enum
from typing import Optional


class HRFlowError(Exception):
    """Base class for all hrflow errors."""


class ConfigurationError(HRFlowError):
    """Workflow or payroll setup that an administrator has to fix."""


class NoApproverResolvable(ConfigurationError):
    def __init__(self, request_type: str, step: int, approver_type: str, detail: str = ""):
        self.request_type = request_type
        self.step = step
        self.approver_type = approver_type
        msg = f"No approver resolvable for {request_type} step {step} ({approver_type})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class InvalidTransition(HRFlowError):
    def __init__(self, state: str, action: str):
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} from state '{state}'")


class NotCurrentApprover(HRFlowError):
    def __init__(self, user_id: str, expected: Optional[str]):
        self.user_id = user_id
        self.expected = expected
        super().__init__(f"User {user_id} is not the pending approver (expected {expected})")


class RecordNotFound(HRFlowError, KeyError):
    def __str__(self):
        return Exception.__str__(self)


class DegradedReason(str, Enum):
    MISSING_TEMPLATE = "missing_template"
    UNSUPPORTED_PERCENTAGE_BASE = "unsupported_percentage_base"
    MISSING_WORK_LOCATION = "missing_work_location"
    GOSI_DISABLED = "gosi_disabled"
    NOT_SUBJECT_TO_GOSI = "not_subject_to_gosi"
    MISSING_GOSI_BASE = "missing_gosi_base"
    MISSING_GOSI_RATE = "missing_gosi_rate"
    NEGATIVE_NET_PAY = "negative_net_pay"
