"""
Email and Document Templates Package

HTML email templates for every notification type, plus the voucher document.
"""
from .email_templates import (
    get_email_template,
    get_base_template,
    get_info_card,
    TEMPLATE_REGISTRY
)
from .voucher_template import build_voucher_document, VoucherDocument

__all__ = [
    "get_email_template",
    "get_base_template",
    "get_info_card",
    "TEMPLATE_REGISTRY",
    "build_voucher_document",
    "VoucherDocument",
]
