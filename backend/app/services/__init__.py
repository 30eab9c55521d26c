"""Service modules - Business logic layer"""
from .notification_service import NotificationService
from .storage_service import StorageService
from .voucher_service import VoucherService
from .policy_service import PolicyService
from .organization_service import OrganizationService
from .expense_service import ExpenseService
from .invite_service import InviteService

__all__ = [
    "NotificationService",
    "StorageService",
    "VoucherService",
    "PolicyService",
    "OrganizationService",
    "ExpenseService",
    "InviteService",
]
