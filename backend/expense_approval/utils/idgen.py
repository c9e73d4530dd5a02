"""ID Generation Utilities"""
import uuid
from .time import utc_now
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'EXP', 'LOG')

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


def generate_expense_id() -> str:
    """Generate expense ID"""
    return generate_id("EXP")


def generate_expense_log_id() -> str:
    """Generate expense log ID"""
    return generate_id("LOG")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = utc_now().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
