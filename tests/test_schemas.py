"""Tests for clone request validation and built-in profiles."""

from __future__ import annotations

import pytest

from session_cloner.errors import ValidationError
from session_cloner.models import CloneResult, CloneStats, CompressionLevel, ToolHandlingMode
from session_cloner.profiles import BUILT_IN_PROFILES, get_profile, list_profiles
from session_cloner.schemas import CloneResponse, parse_clone_request
from tests.builders import SOURCE_SESSION_ID


class TestParseCloneRequest:
    """Tests for parse_clone_request."""

    def test_defaults(self):
        request = parse_clone_request({"session_id": SOURCE_SESSION_ID})
        assert request.source == "claude"
        assert request.tool_removal == 0
        assert request.tool_handling_mode is ToolHandlingMode.REMOVE
        assert request.include_user_messages is True
        assert request.bands() == []

    def test_full_request(self):
        request = parse_clone_request(
            {
                "session_id": SOURCE_SESSION_ID,
                "tool_removal": 50,
                "tool_handling_mode": "truncate",
                "thinking_removal": 100,
                "compression_bands": [
                    {"start": 30, "end": 70, "level": "compress"},
                    {"start": 0, "end": 30, "level": "heavy-compress"},
                ],
            }
        )
        options = request.removal_options()
        assert (options.tool_removal, options.thinking_removal) == (50, 100)
        assert options.tool_handling_mode is ToolHandlingMode.TRUNCATE
        assert [b.level for b in request.bands()] == [CompressionLevel.COMPRESS, CompressionLevel.HEAVY_COMPRESS]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"session_id": "not-a-uuid"},
            {"session_id": "../../etc/passwd"},
            {"tool_removal": 101},
            {"thinking_removal": -1},
            {"tool_handling_mode": "shred"},
            {"source": "cursor"},
            {"compression_bands": [{"start": 50, "end": 40, "level": "compress"}]},
            {"compression_bands": [{"start": 0, "end": 120, "level": "compress"}]},
            {"compression_bands": [{"start": 0, "end": 40, "level": "squash"}]},
            {
                "compression_bands": [
                    {"start": 0, "end": 50, "level": "compress"},
                    {"start": 40, "end": 80, "level": "heavy-compress"},
                ]
            },
        ],
    )
    def test_invalid(self, overrides):
        """Every invalid option surfaces as this package's ValidationError."""
        with pytest.raises(ValidationError):
            parse_clone_request({"session_id": SOURCE_SESSION_ID, **overrides})

    def test_error_names_field(self):
        with pytest.raises(ValidationError, match="tool_removal"):
            parse_clone_request({"session_id": SOURCE_SESSION_ID, "tool_removal": 500})


class TestCloneResponse:
    """Tests for CloneResponse."""

    def test_from_result(self):
        result = CloneResult(
            session_id="new",
            output_path="/tmp/new.jsonl",
            stats=CloneStats(original_turn_count=5, output_turn_count=5, tool_calls_removed=3),
            source_path="/tmp/old.jsonl",
        )
        response = CloneResponse.from_result(result)
        assert response.success is True
        assert response.stats["tool_calls_removed"] == 3
        assert "tool_calls_truncated" not in response.stats
        assert "compression" not in response.stats


class TestProfiles:
    """Tests for built-in profiles."""

    def test_known_profiles(self):
        assert set(list_profiles()) == {"quick-clean", "heavy-trim", "preserve-recent", "light-trim"}

    def test_get_profile_is_copy(self):
        profile = get_profile("heavy-trim")
        profile.tool_removal = 0
        assert BUILT_IN_PROFILES["heavy-trim"].tool_removal == 100
        assert profile.tool_handling_mode is ToolHandlingMode.TRUNCATE

    def test_unknown_profile(self):
        with pytest.raises(ValidationError, match="available"):
            get_profile("nuke")
