"""
Read-side room queries, always recomputed from the registry.
"""

from collections import Counter
from typing import List

from registry import ConnectionRegistry


def members_of(registry: ConnectionRegistry, room_id: str) -> List[dict]:
    return [
        {"userId": c.connection_id, "name": c.display_name}
        for c in registry.all_matching(lambda c: c.room_id == room_id)
    ]


def room_summary(registry: ConnectionRegistry) -> List[dict]:
    """One entry per occupied room. Empty rooms don't exist, so they never show up."""
    counts = Counter(c.room_id for c in registry.all_matching(lambda c: c.room_id is not None))
    return [{"roomId": room, "count": counts[room]} for room in sorted(counts)]
