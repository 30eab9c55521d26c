"""Utility modules"""
from .logger import get_logger, setup_logging
from .jwt import JWTValidator, get_current_user, create_storage_token, verify_storage_token
from .idgen import generate_id, generate_correlation_id, slugify
from .time import utc_now, is_expired

__all__ = [
    "get_logger",
    "setup_logging",
    "JWTValidator",
    "get_current_user",
    "create_storage_token",
    "verify_storage_token",
    "generate_id",
    "generate_correlation_id",
    "slugify",
    "utc_now",
    "is_expired",
]
