"""
RangeTrack — Form validators.

Each validator returns the cleaned value or raises ValidationError with a
message that can be shown to the user as-is.
"""

from __future__ import annotations

import re
from datetime import datetime, tzinfo

from rangetrack.core.errors import ValidationError
from rangetrack.data.models import INVITATION_ROLES, PRIORITIES, RESOURCE_TYPES, TASK_TYPES

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Words accepted for "leave this field empty" in conversations
SKIP_WORDS = {"skip", "none", "-", "n/a", ""}


def validate_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Please enter your email address.")
    if not _EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address.")
    return email


def validate_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Name must be at least 2 characters long.")
    return name


def validate_location(location: str) -> str:
    location = (location or "").strip()
    if len(location) < 3:
        raise ValidationError("Location must be at least 3 characters long.")
    return location


def _choice(value: str, allowed: tuple[str, ...], label: str) -> str:
    cleaned = (value or "").strip().lower().replace(" ", "_")
    if cleaned not in allowed:
        raise ValidationError(
            f"Unknown {label} '{value}'. Choose one of: {', '.join(allowed)}."
        )
    return cleaned


def validate_task_type(value: str) -> str:
    return _choice(value, TASK_TYPES, "task type")


def validate_resource_type(value: str) -> str:
    return _choice(value, RESOURCE_TYPES, "resource type")


def validate_priority(value: str) -> str:
    return _choice(value, PRIORITIES, "priority")


def validate_role(value: str) -> str:
    return _choice(value, INVITATION_ROLES, "role")


def parse_quantity(value: str | None) -> int | None:
    """Parse an optional whole-number quantity. Skip words give None."""
    text = (value or "").strip()
    if text.lower() in SKIP_WORDS:
        return None
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"'{text}' is not a whole number.") from None


def parse_health(value: str | None) -> int | None:
    """Parse an optional 0-100 health score; a trailing % is allowed."""
    text = (value or "").strip().rstrip("%")
    health = parse_quantity(text)
    if health is not None and not 0 <= health <= 100:
        raise ValidationError("Health must be between 0 and 100.")
    return health


def parse_id(value: str | None, label: str = "id") -> int:
    try:
        return int((value or "").strip().lstrip("#"))
    except ValueError:
        raise ValidationError(f"Please give a numeric {label}.") from None


def optional_text(value: str | None) -> str | None:
    text = (value or "").strip()
    return None if text.lower() in SKIP_WORDS else text


# A bare date is taken as midday so it never counts as an early-morning task
_WHEN_FORMATS = (("%Y-%m-%d %H:%M", False), ("%Y-%m-%d", True))


def parse_when(value: str | None, tz: tzinfo | None = None) -> int | None:
    """Parse "YYYY-MM-DD [HH:MM]" in `tz` into epoch ms. Skip words give None.

    With `tz` None the machine's local time is used.
    """
    text = " ".join((value or "").split())
    if text.lower() in SKIP_WORDS:
        return None
    for fmt, date_only in _WHEN_FORMATS:
        try:
            when = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if date_only:
            when = when.replace(hour=12)
        return int(when.replace(tzinfo=tz).timestamp() * 1000)
    raise ValidationError("Please use YYYY-MM-DD or YYYY-MM-DD HH:MM.")
