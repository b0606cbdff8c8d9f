"""User message text checks, applied before any I/O."""
import re

from app.config import get_settings
from app.core.exceptions import ValidationError

_REPEATED_CHARS = re.compile(r"(.)\1{50,}", re.DOTALL)


def validate_message_text(text: str | None, max_length: int | None = None) -> str:
    """Return the text unchanged if acceptable, else raise ValidationError."""
    if not isinstance(text, str):
        raise ValidationError("Message content must be a string")
    if not text.strip():
        raise ValidationError("Message cannot be empty")
    limit = max_length or get_settings().chat_message_max_length
    if len(text) > limit:
        raise ValidationError(f"Message too long (max {limit} characters)")
    if _REPEATED_CHARS.search(text):
        raise ValidationError("Message contains excessive repeated characters")
    return text


def require_id(value: str | None, name: str) -> str:
    """Identifiers must be non-empty strings."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value
