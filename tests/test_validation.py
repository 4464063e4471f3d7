"""Tests for sessionkit.validation module."""

import pytest

from sessionkit.errors import ValidationError
from sessionkit.validation import (
    validate_checkpoint_metadata,
    validate_checkpoint_name,
    validate_checkpoint_priority,
    validate_checkpoint_tags,
    validate_session_data,
)


class TestValidateCheckpointName:
    """Tests for validate_checkpoint_name()."""

    def test_accepts_normal_name(self):
        assert validate_checkpoint_name("Before refactor") is True

    def test_accepts_exactly_100_characters(self):
        """The length limit is inclusive."""
        assert validate_checkpoint_name("a" * 100) is True

    def test_rejects_101_characters(self):
        with pytest.raises(ValidationError, match="cannot exceed 100 characters"):
            validate_checkpoint_name("a" * 101)

    def test_rejects_empty_name(self):
        with pytest.raises(ValidationError, match="Checkpoint name cannot be empty"):
            validate_checkpoint_name("")

    def test_rejects_whitespace_only(self):
        with pytest.raises(ValidationError, match="Checkpoint name cannot be empty"):
            validate_checkpoint_name("   \t ")

    def test_error_is_a_value_error(self):
        """Callers can catch plain ValueError."""
        with pytest.raises(ValueError):
            validate_checkpoint_name("")


class TestValidateCheckpointPriority:
    """Tests for validate_checkpoint_priority()."""

    @pytest.mark.parametrize("priority", ["low", "medium", "high"])
    def test_accepts_known_priorities(self, priority):
        assert validate_checkpoint_priority(priority) is True

    def test_rejects_unknown_priority_with_choices(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_checkpoint_priority("urgent")

        assert str(exc_info.value) == "Invalid priority: urgent. Must be one of: low, medium, high"
        assert exc_info.value.code == "INVALID_PRIORITY"

    def test_priority_is_case_sensitive(self):
        with pytest.raises(ValidationError):
            validate_checkpoint_priority("High")


class TestValidateCheckpointTags:
    """Tests for validate_checkpoint_tags()."""

    def test_accepts_empty_list(self):
        assert validate_checkpoint_tags([]) is True

    def test_accepts_ten_tags(self):
        assert validate_checkpoint_tags([f"tag{i}" for i in range(10)]) is True

    def test_accepts_tuple(self):
        assert validate_checkpoint_tags(("a", "b")) is True

    def test_rejects_eleven_tags(self):
        with pytest.raises(ValidationError, match="Cannot have more than 10 tags per checkpoint"):
            validate_checkpoint_tags([f"tag{i}" for i in range(11)])

    def test_rejects_non_array(self):
        with pytest.raises(ValidationError, match="Tags must be an array"):
            validate_checkpoint_tags("database,migration")

    def test_rejects_non_string_tag(self):
        with pytest.raises(ValidationError, match="All tags must be strings"):
            validate_checkpoint_tags(["ok", 42])

    def test_accepts_tag_of_50_characters(self):
        assert validate_checkpoint_tags(["x" * 50]) is True

    def test_rejects_tag_over_50_characters(self):
        with pytest.raises(ValidationError, match="Tag cannot exceed 50 characters"):
            validate_checkpoint_tags(["x" * 51])

    def test_rejects_comma(self):
        with pytest.raises(ValidationError, match="Tags cannot contain commas"):
            validate_checkpoint_tags(["a,b"])

    def test_count_checked_before_contents(self):
        """Eleven bad tags report the count, not the first bad tag."""
        with pytest.raises(ValidationError, match="Cannot have more than 10"):
            validate_checkpoint_tags(["a,b"] * 11)


class TestValidateSessionData:
    """Tests for validate_session_data()."""

    def test_passes_with_both(self):
        validate_session_data("session-1", {"openFiles": []})

    def test_requires_session_id(self):
        with pytest.raises(ValidationError, match="Session ID is required"):
            validate_session_data("", {})

    def test_requires_workspace_state(self):
        with pytest.raises(ValidationError, match="Workspace state is required"):
            validate_session_data("session-1", None)


class TestValidateCheckpointMetadata:
    """Tests for validate_checkpoint_metadata()."""

    def test_skips_missing_fields(self):
        validate_checkpoint_metadata()

    def test_checks_provided_name(self):
        with pytest.raises(ValidationError, match="cannot be empty"):
            validate_checkpoint_metadata(name="  ")

    def test_checks_provided_tags(self):
        with pytest.raises(ValidationError, match="commas"):
            validate_checkpoint_metadata(tags=["x,y"])
