"""Tests for rangetrack.core.errors — user-facing error translation."""

import sqlite3

import pytest

from rangetrack.core.errors import GENERIC_ERROR, BackendError, ValidationError, friendly_error


class TestFriendlyError:
    @pytest.mark.parametrize("text, expected", [
        ("UNIQUE constraint failed: users.id", "That record already exists."),
        ("NOT NULL constraint failed: tasks.type", "A required field is missing."),
        ("database is locked", "The farm database is busy. Please try again in a moment."),
        ("no such table: tasks", "The farm database is not set up yet. Please restart the bot."),
        ("Task 7 not found", "That record could not be found."),
        ("Invitation 3 has expired", "That invitation has expired."),
    ])
    def test_known_messages(self, text, expected):
        assert friendly_error(text) == expected

    def test_accepts_exceptions(self):
        exc = BackendError(str(sqlite3.OperationalError("database is locked")))
        assert "busy" in friendly_error(exc)

    def test_unknown_text_is_generic(self):
        assert friendly_error("segfault in the hay baler") == GENERIC_ERROR

    def test_none_is_generic(self):
        assert friendly_error(None) == GENERIC_ERROR

    def test_first_match_wins(self):
        # "not found" appears after "unique constraint" in the table
        assert friendly_error("unique constraint: parent not found") == "That record already exists."


class TestErrorTypes:
    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            raise ValidationError("bad")

    def test_backend_error_is_not_validation(self):
        assert not issubclass(BackendError, ValidationError)
