"""Tests for parentUuid chain repair."""

from __future__ import annotations

from session_cloner.chain import repair_parent_uuid_chain
from session_cloner.models import RemovalOptions
from session_cloner.removal import apply_removals
from tests.builders import assistant_entry, build_session, user_entry


def _assert_chain_resolves(entries):
    seen = set()
    for entry in entries:
        parent = entry.get("parentUuid")
        assert parent is None or parent in seen
        if entry.get("uuid"):
            seen.add(entry["uuid"])


class TestRepairChain:
    """Tests for repair_parent_uuid_chain."""

    def test_intact_chain_untouched(self):
        """A chain with no gaps comes back as the same objects."""
        entries = build_session(3)
        repaired = repair_parent_uuid_chain(entries)
        assert all(a is b for a, b in zip(repaired, entries))

    def test_dangling_parent_repointed(self):
        """A parent that no longer exists points at the previous uuid."""
        entries = [
            user_entry("u0", None, "hi"),
            assistant_entry("a1", "deleted", "reply"),
        ]
        repaired = repair_parent_uuid_chain(entries)
        assert repaired[1]["parentUuid"] == "u0"
        assert entries[1]["parentUuid"] == "deleted"

    def test_first_entry_dangling_becomes_none(self):
        """With no earlier uuid, a dangling parent becomes null."""
        repaired = repair_parent_uuid_chain([assistant_entry("a", "gone", "x")])
        assert repaired[0]["parentUuid"] is None

    def test_forward_reference_repaired(self):
        """A parent appearing only later in the file does not count as resolved."""
        entries = [
            user_entry("u0", None, "hi"),
            assistant_entry("a1", "a2", "first"),
            assistant_entry("a2", "u0", "second"),
        ]
        repaired = repair_parent_uuid_chain(entries)
        assert repaired[1]["parentUuid"] == "u0"

    def test_entries_without_uuid_skipped_as_targets(self):
        """Entries lacking a uuid are never used as repair targets."""
        entries = [
            user_entry("u0", None, "hi"),
            {"type": "file-history-snapshot", "messageId": "m"},
            assistant_entry("a1", "gone", "x"),
        ]
        repaired = repair_parent_uuid_chain(entries)
        assert repaired[2]["parentUuid"] == "u0"

    def test_chain_resolves_after_removal(self):
        """After full removal every parent resolves to an earlier entry."""
        entries = build_session(5)
        removed = apply_removals(entries, RemovalOptions(tool_removal=100, thinking_removal=100))
        repaired = repair_parent_uuid_chain(removed.entries)
        _assert_chain_resolves(repaired)
        assert len(repaired) < len(entries)
