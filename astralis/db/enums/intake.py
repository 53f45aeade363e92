"""Intake enums."""

from enum import Enum


class IntakeSource(str, Enum):
    FORM = "FORM"
    EMAIL = "EMAIL"
    CHAT = "CHAT"
    API = "API"


class IntakeStatus(str, Enum):
    NEW = "NEW"
    ROUTING = "ROUTING"
    ASSIGNED = "ASSIGNED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class IntakeCategory(str, Enum):
    """AI classification buckets for inbound requests."""

    SALES_INQUIRY = "SALES_INQUIRY"
    SUPPORT_REQUEST = "SUPPORT_REQUEST"
    BILLING_QUESTION = "BILLING_QUESTION"
    PARTNERSHIP = "PARTNERSHIP"
    GENERAL = "GENERAL"
