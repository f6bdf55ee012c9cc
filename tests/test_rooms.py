from registry import Connection, ConnectionRegistry
from rooms import members_of, room_summary


def _registry(*rooms):
    registry = ConnectionRegistry()
    for i, room in enumerate(rooms):
        registry.add(Connection(connection_id=f"c{i}", handle=f"ws-{i}", display_name=f"user{i}", room_id=room))
    return registry


def test_members_of():
    registry = _registry("lobby", "lobby", "other", None)
    members = members_of(registry, "lobby")
    assert sorted(members, key=lambda m: m["userId"]) == [
        {"userId": "c0", "name": "user0"},
        {"userId": "c1", "name": "user1"},
    ]


def test_members_of_unknown_room_is_empty():
    assert members_of(_registry("lobby"), "nowhere") == []


def test_room_summary_counts_occupied_rooms_only():
    registry = _registry("lobby", "lobby", "other", None)
    assert room_summary(registry) == [{"roomId": "lobby", "count": 2}, {"roomId": "other", "count": 1}]


def test_room_summary_reflects_registry_changes():
    registry = _registry("lobby", "other")
    registry.find("c1").room_id = None
    assert room_summary(registry) == [{"roomId": "lobby", "count": 1}]
    registry.remove("c0")
    assert room_summary(registry) == []
