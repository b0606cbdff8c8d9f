"""
Strip personal identifiers from text and assessment data before sending them to Gemini.
Health details stay (the assistant needs them); who the user is does not.
"""
import re
from typing import Any


# Patterns and replacement for identifying data (redact, do not send)
PII_PATTERNS = [
    (re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"), "***EMAIL***"),
    (re.compile(r"(?<!\w)(?:\+\d{1,3}[\s.-]?)?(?:\(\d{3}\)|\d{3})[\s.-]?\d{3}[\s.-]?\d{4}(?!\w)"), "***PHONE***"),
    (re.compile(r"(password|passwd|token|api_key|apikey)\s*[:=]\s*[\"']?[^\s\"']+", re.I), r"\1=***REDACTED***"),
]

# Keys whose values never leave the service
SENSITIVE_KEYS = {
    "user_id", "email", "username", "name", "full_name", "phone",
    "password", "token", "authorization", "assessment_id",
}


def redact_text(text: str) -> str:
    """Redact emails, phone numbers and credentials in a string."""
    if not text or not isinstance(text, str):
        return ""
    out = text
    for pattern, repl in PII_PATTERNS:
        out = pattern.sub(repl, out)
    return out


def redact_dict(obj: Any) -> Any:
    """Recursively drop sensitive keys and redact string values."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return redact_text(obj)
    if isinstance(obj, dict):
        return {
            k: redact_dict(v)
            for k, v in obj.items()
            if not (isinstance(k, str) and k.lower() in SENSITIVE_KEYS)
        }
    if isinstance(obj, list):
        return [redact_dict(i) for i in obj]
    return obj
