from .base import Timestamped
from .workflow import WorkflowDefinition, WorkflowStatus, TriggerType
from .enrollment import Enrollment, EnrollmentStatus
from .trigger import TriggerEvent
from .execution_log import ExecutionLogEntry, LogStatus
from .scheduled_action import ScheduledAction, ScheduledActionStatus, ScheduledActionType
from .client import Client, ClientPortalStatus
from .message import Message, MessageChannel, MessageStatus, MessageTemplate
from .steps import StepKind, StepSpec

__all__ = [
    "Timestamped",
    "WorkflowDefinition", "WorkflowStatus", "TriggerType",
    "Enrollment", "EnrollmentStatus",
    "TriggerEvent",
    "ExecutionLogEntry", "LogStatus",
    "ScheduledAction", "ScheduledActionStatus", "ScheduledActionType",
    "Client", "ClientPortalStatus",
    "Message", "MessageChannel", "MessageStatus", "MessageTemplate",
    "StepKind", "StepSpec",
]
