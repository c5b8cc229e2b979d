"""Enumeration types for the proposal workflow."""

from enum import Enum


class ProposalStatus(str, Enum):
    """Status lifecycle for proposals."""
    PENDING = "pending"
    APPROVED = "approved"
    DISAPPROVED = "disapproved"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ServiceType(str, Enum):
    """Business service types offered on step 1 of the wizard."""
    WASTE_COLLECTION = "waste_collection"
    HAZARDOUS = "hazardous"
    FIXED_MONTHLY = "fixed_monthly"
    CLEARING = "clearing"
    ONE_TIME = "one_time"
    LONG_TERM = "long_term"
    RECYCLABLES = "recyclables"


class TemplateType(str, Enum):
    """Template types, one per service type."""
    COMPACTOR_HAULING = "compactor_hauling"
    HAZARDOUS_WASTE = "hazardous_waste"
    FIXED_MONTHLY = "fixed_monthly"
    CLEARING_PROJECT = "clearing_project"
    ONE_TIME_HAULING = "one_time_hauling"
    LONG_TERM = "long_term"
    RECYCLABLES_PURCHASE = "recyclables_purchase"


class UserRole(str, Enum):
    """Roles that drive proposal transitions."""
    SALES = "sales"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class ConditionalMode(str, Enum):
    """Rendering of {{#if}} blocks whose key is not in the field map."""
    PRESERVE = "preserve"
    RESOLVE = "resolve"


class NoticeLevel(str, Enum):
    """Severity of a transient user notification."""
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
