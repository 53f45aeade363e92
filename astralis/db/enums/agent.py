"""Agent decision and log enums."""

from enum import Enum


class DecisionStatus(str, Enum):
    PENDING = "PENDING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    REQUIRES_APPROVAL = "REQUIRES_APPROVAL"


REVIEWABLE_DECISION_STATUSES = (
    DecisionStatus.PENDING.value,
    DecisionStatus.REQUIRES_APPROVAL.value,
)


class InputSource(str, Enum):
    """Where the agent received the input that led to a decision."""

    EMAIL = "EMAIL"
    WEBHOOK = "WEBHOOK"
    DB_TRIGGER = "DB_TRIGGER"
    WORKER = "WORKER"
    API = "API"
    SCHEDULE = "SCHEDULE"


class DecisionType(str, Enum):
    ASSIGN_PIPELINE = "ASSIGN_PIPELINE"
    CREATE_EVENT = "CREATE_EVENT"
    UPDATE_EVENT = "UPDATE_EVENT"
    CANCEL_EVENT = "CANCEL_EVENT"
    SEND_NOTIFICATION = "SEND_NOTIFICATION"
    TRIGGER_AUTOMATION = "TRIGGER_AUTOMATION"
    ESCALATE = "ESCALATE"
    NO_ACTION = "NO_ACTION"


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogCategory(str, Enum):
    INTAKE = "intake"
    CLASSIFICATION = "classification"
    SCHEDULING = "scheduling"
    DELIVERY = "delivery"
    WORKER = "worker"
    SYSTEM = "system"
