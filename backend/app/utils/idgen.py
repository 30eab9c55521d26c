"""ID Generation Utilities"""
import re
import unicodedata
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'EXP', 'ORG', 'VCH')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('EXP')
        'EXP-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_organization_id() -> str:
    return generate_id("ORG")


def generate_membership_id() -> str:
    return generate_id("MEM")


def generate_expense_id() -> str:
    return generate_id("EXP")


def generate_comment_id() -> str:
    return generate_id("CMT")


def generate_history_id() -> str:
    return generate_id("HIS")


def generate_policy_id() -> str:
    return generate_id("POL")


def generate_voucher_id() -> str:
    return generate_id("VCH")


def generate_invite_id() -> str:
    return generate_id("INV")


def generate_invite_link_id() -> str:
    return generate_id("LNK")


def generate_link_usage_id() -> str:
    return generate_id("USE")


def generate_notification_id() -> str:
    return generate_id("NTF")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"


def slugify(value: str) -> str:
    """
    Turn an organization name into a URL slug

    Examples:
        >>> slugify("Acme Travel & Co.")
        'acme-travel-co'
    """
    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "org"
