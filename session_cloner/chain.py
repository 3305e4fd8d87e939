"""Parent-chain repair.

Deleting entries can leave a ``parentUuid`` pointing at nothing. Each
dangling reference is re-pointed at the nearest preceding entry that still
has a uuid, which keeps the conversation resumable from its last entry.
"""

from session_cloner.log_config import get_logger
from session_cloner.models import SessionEntry

log = get_logger("chain")


def repair_parent_uuid_chain(entries: list[SessionEntry]) -> list[SessionEntry]:
    """Re-point parentUuid references that do not resolve to an earlier uuid.

    Args:
        entries: Entries after all deletions

    Returns:
        New list; repaired entries are shallow copies differing only in
        parentUuid, all others are the same objects
    """
    seen: set[str] = set()
    last_uuid: str | None = None
    repaired: list[SessionEntry] = []
    fixes = 0

    for entry in entries:
        parent = entry.get("parentUuid")
        if parent is not None and parent not in seen:
            entry = {**entry, "parentUuid": last_uuid}
            fixes += 1

        repaired.append(entry)

        uuid = entry.get("uuid")
        if uuid is not None:
            seen.add(uuid)
            last_uuid = uuid

    if fixes:
        log.debug(f"Repaired {fixes} parentUuid reference(s)")
    return repaired
