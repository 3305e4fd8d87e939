"""Tests for session sources."""

from __future__ import annotations

import os

import pytest

from session_cloner.errors import ValidationError
from session_cloner.sources import (
    ClaudeSessionSource,
    CopilotSessionSource,
    get_session_source,
    truncate_message,
    validate_folder_name,
    validate_session_id,
)
from session_cloner.sources.claude import decode_folder_name, encode_folder_path
from session_cloner.sources.copilot import extract_first_message, extract_path_from_uri
from tests.builders import (
    SOURCE_SESSION_ID,
    build_copilot_doc,
    build_session,
    copilot_request,
    write_claude_session,
    write_copilot_session,
)

OTHER_ID = "99999999-8888-4777-8666-555555555555"


class TestHelpers:
    """Tests for shared source helpers."""

    def test_truncate_message(self):
        assert truncate_message("  a \n\n b  ") == "a b"
        result = truncate_message("y" * 150)
        assert len(result) == 100
        assert result.endswith("...")

    @pytest.mark.parametrize("name", ["", "..", "a/b", "a\\b", "x..y"])
    def test_invalid_folder(self, name):
        with pytest.raises(ValidationError):
            validate_folder_name(name)

    @pytest.mark.parametrize("sid", ["", "../etc", "a/b", ".hidden", "x..y"])
    def test_invalid_session_id(self, sid):
        with pytest.raises(ValidationError):
            validate_session_id(sid)

    def test_valid_session_id(self):
        validate_session_id(SOURCE_SESSION_ID)

    def test_folder_encoding(self):
        assert decode_folder_name("-Users-dev-app") == "/Users/dev/app"
        assert encode_folder_path("/Users/dev/app") == "-Users-dev-app"

    def test_uri_to_path(self):
        assert extract_path_from_uri("file:///Users/dev/my%20app") == "/Users/dev/my app"
        assert extract_path_from_uri("file:///c%3A/work") == "c:/work"

    def test_unknown_source(self, config):
        with pytest.raises(ValidationError):
            get_session_source("cursor", config)


class TestClaudeSource:
    """Tests for ClaudeSessionSource."""

    def test_find_and_path(self, config):
        path = write_claude_session(config, build_session(2))
        source = ClaudeSessionSource(config)
        assert source.find_session(SOURCE_SESSION_ID) == "-Users-dev-app"
        assert source.session_path("-Users-dev-app", SOURCE_SESSION_ID) == path
        assert source.find_session(OTHER_ID) is None

    def test_list_projects(self, config):
        write_claude_session(config, build_session(1), folder="-Users-dev-zeta")
        write_claude_session(config, build_session(1), folder="-Users-dev-alpha")
        projects = ClaudeSessionSource(config).list_projects()
        assert [p.path for p in projects] == ["/Users/dev/alpha", "/Users/dev/zeta"]

    def test_list_sessions(self, config):
        older = write_claude_session(config, build_session(3), session_id=SOURCE_SESSION_ID)
        write_claude_session(config, build_session(1), session_id=OTHER_ID)
        os.utime(older, (1_000_000_000, 1_000_000_000))

        sessions = ClaudeSessionSource(config).list_sessions("-Users-dev-app")

        assert [s.session_id for s in sessions] == [OTHER_ID, SOURCE_SESSION_ID]
        assert sessions[1].turn_count == 3
        assert sessions[1].first_message.startswith("prompt 0")
        assert sessions[1].project_path == "/Users/dev/app"
        assert sessions[1].to_dict()["source"] == "claude"

    def test_list_sessions_tolerates_bad_lines(self, config):
        path = write_claude_session(config, build_session(1))
        with open(path, "a", encoding="utf-8") as f:
            f.write("{broken\n")
        sessions = ClaudeSessionSource(config).list_sessions("-Users-dev-app")
        assert sessions[0].turn_count == 1

    def test_unavailable(self, tmp_path, config):
        config.claude_dir = tmp_path / "missing"
        source = ClaudeSessionSource(config)
        assert not source.is_available()
        assert source.list_projects() == []
        assert source.find_session(SOURCE_SESSION_ID) is None

    def test_traversal_rejected(self, config):
        with pytest.raises(ValidationError):
            ClaudeSessionSource(config).list_sessions("../../etc")


class TestCopilotSource:
    """Tests for CopilotSessionSource."""

    def test_find_and_list(self, config):
        doc = build_copilot_doc(4)
        doc["requests"].append(copilot_request(9, "canceled", "", canceled=True))
        write_copilot_session(config, doc)
        source = CopilotSessionSource(config)

        assert source.find_session(SOURCE_SESSION_ID) == "abc123hash"
        projects = source.list_projects()
        assert [(p.folder, p.path) for p in projects] == [("abc123hash", "/Users/dev/my app")]

        sessions = source.list_sessions("abc123hash")
        assert len(sessions) == 1
        assert sessions[0].turn_count == 4
        assert sessions[0].first_message == "question 0"
        assert sessions[0].source == "copilot"

    def test_bad_session_skipped(self, config):
        write_copilot_session(config, build_copilot_doc(1))
        bad = config.vscode_storage_path / "abc123hash" / "chatSessions" / f"{OTHER_ID}.json"
        bad.write_text("{oops")
        sessions = CopilotSessionSource(config).list_sessions("abc123hash")
        assert [s.session_id for s in sessions] == [SOURCE_SESSION_ID]

    @pytest.mark.parametrize("workspace_json", [None, "{not json", "[]"])
    def test_list_sessions_without_readable_workspace_json(self, config, workspace_json):
        """A missing or corrupt workspace.json falls back to the folder name."""
        write_copilot_session(config, build_copilot_doc(1))
        ws_file = config.vscode_storage_path / "abc123hash" / "workspace.json"
        if workspace_json is None:
            ws_file.unlink()
        else:
            ws_file.write_text(workspace_json)

        sessions = CopilotSessionSource(config).list_sessions("abc123hash")

        assert [s.session_id for s in sessions] == [SOURCE_SESSION_ID]
        assert sessions[0].project_path == "abc123hash"

    def test_first_message_empty(self):
        assert extract_first_message({"requests": []}) == "(No messages)"
