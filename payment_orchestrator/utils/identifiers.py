"""Identifier parsing helpers"""

import uuid
from typing import Union

from payment_orchestrator.domain.exceptions import ValidationError


def parse_uuid(value: Union[str, uuid.UUID], label: str = "ID") -> uuid.UUID:
    """Accept a UUID or its string form; malformed input is a ValidationError"""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise ValidationError(f"Invalid {label} format: {value}")
