import re

from core.errors import ValidationError

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_uid(uid: str, field: str = "user id") -> str:
    if not isinstance(uid, str) or not USER_ID_PATTERN.match(uid):
        raise ValidationError(f"Malformed {field}")
    return uid


def validate_match_id(match_id: int) -> int:
    if isinstance(match_id, bool) or not isinstance(match_id, int) or match_id <= 0:
        raise ValidationError("Malformed match id")
    return match_id


def clean_content(content: str | None, max_length: int) -> str:
    """Trim message content and enforce the length limit."""
    body = (content or "").strip()
    if not body:
        raise ValidationError("Message content required")
    if len(body) > max_length:
        raise ValidationError(f"Message too long (max {max_length} characters)")
    return body
