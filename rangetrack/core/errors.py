"""Error types and the user-facing message table.

Three kinds of failure reach the user:
- ValidationError: bad form input, blocks the submit.
- BackendError: the database rejected or failed an operation.
- anything else: logged, shown as a generic message.
"""

from __future__ import annotations

GENERIC_ERROR = "An unexpected error occurred. Please try again."


class ValidationError(ValueError):
    """Raised when user input fails validation. The message is user-facing."""


class BackendError(Exception):
    """Raised when any persistence backend operation fails."""


# Ordered (substring, message) pairs; first match on the lower-cased
# backend error text wins.
_ERROR_MESSAGES: list[tuple[str, str]] = [
    ("unique constraint", "That record already exists."),
    ("foreign key constraint", "That record is linked to something that no longer exists."),
    ("not null constraint", "A required field is missing."),
    ("check constraint", "One of the values is out of range."),
    ("database is locked", "The farm database is busy. Please try again in a moment."),
    ("no such table", "The farm database is not set up yet. Please restart the bot."),
    ("unable to open database", "The farm database could not be opened."),
    ("disk i/o error", "The farm database could not be read from disk."),
    ("readonly database", "The farm database is read-only right now."),
    ("not found", "That record could not be found."),
    ("expired", "That invitation has expired."),
    ("timed out", "The request timed out. Please try again."),
]


def friendly_error(error: str | BaseException | None) -> str:
    """Translate backend error text into a message safe to show the user."""
    if error is None:
        return GENERIC_ERROR
    text = str(error).lower()
    for needle, message in _ERROR_MESSAGES:
        if needle in text:
            return message
    return GENERIC_ERROR
