"""Repository layer - MongoDB data access"""
from .mongo_client import get_database, get_collection, create_indexes, close_connection, health_check
from .expense_repo import ExpenseRepository
from .organization_repo import OrganizationRepository
from .profile_repo import ProfileRepository
from .policy_repo import PolicyRepository
from .voucher_repo import VoucherRepository
from .invite_repo import InviteRepository
from .audit_repo import AuditRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "close_connection",
    "health_check",
    "ExpenseRepository",
    "OrganizationRepository",
    "ProfileRepository",
    "PolicyRepository",
    "VoucherRepository",
    "InviteRepository",
    "AuditRepository",
    "NotificationRepository",
]
