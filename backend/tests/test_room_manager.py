import random

import pytest

from lobby.core.errors import (
    AlreadyInRoom,
    BadCode,
    BadPassword,
    InvalidConnection,
    NoSuchRoom,
    RoomFull,
    WeakPassword,
)
from lobby.schemas.messages import Pose
from lobby.state.room_manager import CODE_ALPHABET, MAX_PLAYERS, MIN_PLAYERS, clamp_capacity


def test_create_public_room_owner_is_member(rooms, registry, member):
    owner = member()
    room, code = rooms.create(owner, name="Arena", capacity=4, nickname="Ana")

    identity = registry.lookup(owner)
    assert code is None
    assert room.visibility == "public" and room.lock == "none"
    assert room.capacity == 4
    assert identity.room_id == room.id
    assert identity.nickname == "Ana"
    assert list(room.members) == [identity.player_id]
    assert room.id in rooms


def test_create_defaults_and_name_clip(rooms, member):
    room, _ = rooms.create(member())
    assert room.name == "Sala"
    assert room.capacity == MIN_PLAYERS

    room, _ = rooms.create(member(), name="x" * 40)
    assert room.name == "x" * 24


@pytest.mark.parametrize(
    "value, expected",
    [(None, 2), (0, 2), (1, 2), (2, 2), (7.9, 7), (16, 16), (99, 16), (float("nan"), 2), (float("inf"), 16), (float("-inf"), 2)],
)
def test_capacity_is_clamped(value, expected):
    assert clamp_capacity(value) == expected


def test_private_room_defaults_to_code_lock(rooms, member):
    room, code = rooms.create(member(), visibility="private", lock="whatever")

    assert room.lock == "code"
    assert len(code) == 6
    assert set(code) <= set(CODE_ALPHABET)
    assert room.code == code


def test_private_password_room(rooms, member):
    room, code = rooms.create(member(), visibility="private", lock="password", password="abc")
    assert code is None
    assert room.lock == "password"
    assert room.password == "abc"


@pytest.mark.parametrize("password", [None, "", "ab"])
def test_weak_password_rejected(rooms, registry, member, password):
    owner = member()
    with pytest.raises(WeakPassword):
        rooms.create(owner, visibility="private", lock="password", password=password)
    assert len(rooms) == 0
    assert registry.lookup(owner).room_id is None


def test_public_room_ignores_lock_and_password(rooms, member):
    room, code = rooms.create(member(), visibility="public", lock="password", password="x")
    assert room.lock == "none"
    assert room.password is None
    assert code is None


def test_create_while_in_room_fails(rooms, member):
    owner = member()
    rooms.create(owner)
    with pytest.raises(AlreadyInRoom) as exc:
        rooms.create(owner)
    assert exc.value.message == "Ya estás en una sala. Salí primero."
    assert len(rooms) == 1


def test_unregistered_connection_is_invalid(rooms):
    with pytest.raises(InvalidConnection):
        rooms.create(object())
    with pytest.raises(InvalidConnection):
        rooms.join(object(), "nope")


def test_join_sets_nickname_and_membership(rooms, registry, member):
    room, _ = rooms.create(member(), capacity=3)
    guest = member()

    joined = rooms.join(guest, room.id, nickname="B" * 30)

    identity = registry.lookup(guest)
    assert joined is room
    assert identity.room_id == room.id
    assert identity.nickname == "B" * 18
    assert room.members[identity.player_id] == "B" * 18

    other = member()
    rooms.join(other, room.id)
    assert registry.lookup(other).nickname == "Player"


def test_join_failures(rooms, member):
    room, _ = rooms.create(member(), capacity=2)
    rooms.join(member(), room.id)

    with pytest.raises(NoSuchRoom):
        rooms.join(member(), "missing")
    with pytest.raises(RoomFull):
        rooms.join(member(), room.id)

    inside = member()
    other, _ = rooms.create(inside)
    with pytest.raises(AlreadyInRoom) as exc:
        rooms.join(inside, room.id)
    assert exc.value.message == "Ya estás en una sala."


def test_join_private_requires_exact_secret(rooms, registry, member):
    coded, code = rooms.create(member(), visibility="private", capacity=4)
    locked, _ = rooms.create(member(), visibility="private", lock="password", password="secreto", capacity=4)
    guest = member()

    with pytest.raises(BadCode):
        rooms.join(guest, coded.id, code=None)
    with pytest.raises(BadCode):
        rooms.join(guest, coded.id, code=code.lower() if code != code.lower() else code + "X")
    with pytest.raises(BadPassword):
        rooms.join(guest, locked.id, password="secret")
    assert registry.lookup(guest).room_id is None

    rooms.join(guest, locked.id, password="secreto")
    assert registry.lookup(guest).room_id == locked.id


def test_leave_removes_member_and_state(rooms, registry, member):
    owner, guest = member(), member()
    room, _ = rooms.create(owner, capacity=4)
    rooms.join(guest, room.id)
    guest_id = registry.lookup(guest).player_id

    departure = rooms.leave(guest)

    assert departure.player_id == guest_id
    assert departure.room_id == room.id
    assert not departure.room_removed
    assert guest_id not in room.members
    assert guest_id not in room.states
    assert registry.lookup(guest).room_id is None


def test_last_leave_deletes_room(rooms, registry, member):
    owner = member()
    room, _ = rooms.create(owner)

    departure = rooms.leave(owner)

    assert departure.room_removed
    assert room.id not in rooms
    assert rooms.get(room.id) is None
    assert rooms.list_for_directory() == []


def test_leave_without_room_is_noop(rooms, member):
    assert rooms.leave(member()) is None
    assert rooms.leave(object()) is None


def test_update_state_replaces_record(rooms, registry, member):
    owner, guest = member(), member()
    room, _ = rooms.create(owner, capacity=4, nickname="Ana")
    rooms.join(guest, room.id, nickname="Bea")

    rooms.update_state(owner, Pose(x=1, y=2, z=3, a=0.5))
    rooms.update_state(owner, Pose(x=9))

    world = {entry.id: entry for entry in rooms.world(room)}
    owner_id = registry.lookup(owner).player_id
    guest_id = registry.lookup(guest).player_id
    assert set(world) == {owner_id, guest_id}
    assert world[owner_id].model_dump() == {"id": owner_id, "nickname": "Ana", "x": 9, "y": 0, "z": 0, "a": 0}
    assert world[guest_id].model_dump() == {"id": guest_id, "nickname": "Bea", "x": 0, "y": 0, "z": 0, "a": 0}


def test_update_state_outside_room_is_noop(rooms, member):
    assert rooms.update_state(member(), Pose(x=1)) is None


def test_listing_is_redacted(rooms, member):
    coded, code = rooms.create(member(), name="Codigo", visibility="private", capacity=2)
    locked, _ = rooms.create(member(), name="Clave", visibility="private", lock="password", password="hunter2")
    rooms.create(member(), name="Abierta")

    listing = [summary.model_dump() for summary in rooms.list_for_directory()]
    text = repr(listing)

    assert [entry["name"] for entry in listing] == ["Codigo", "Clave", "Abierta"]
    assert code not in text
    assert "hunter2" not in text
    assert all("code" not in entry and "password" not in entry for entry in listing)
    assert listing[0]["codeRequired"] and not listing[0]["passwordRequired"]
    assert listing[1]["passwordRequired"] and not listing[1]["codeRequired"]
    assert not listing[2]["codeRequired"] and not listing[2]["passwordRequired"]


def test_listing_status_tracks_capacity(rooms, member):
    room, _ = rooms.create(member(), capacity=2)
    assert rooms.summary(room).status == "open"
    rooms.join(member(), room.id)
    summary = rooms.summary(room)
    assert summary.status == "full"
    assert summary.players == 2
    assert summary.maxPlayers == 2


@pytest.mark.parametrize("seed", range(5))
def test_random_join_leave_keeps_invariants(rooms, registry, member, seed):
    rng = random.Random(seed)
    capacity = rng.randint(MIN_PLAYERS, MAX_PLAYERS)
    owner = member()
    room, _ = rooms.create(owner, capacity=capacity)
    room_id = room.id
    others = [member() for _ in range(capacity + 5)]

    for _ in range(300):
        conn = rng.choice(others)
        identity = registry.lookup(conn)
        live = rooms.get(room_id)
        if identity.room_id is None:
            if live is None:
                room_id = rooms.create(conn, capacity=capacity)[0].id
                continue
            if live.is_full:
                with pytest.raises(RoomFull):
                    rooms.join(conn, room_id)
            else:
                rooms.join(conn, room_id)
        else:
            rooms.leave(conn)

        live = rooms.get(room_id)
        if live is not None:
            assert 0 < len(live.members) <= capacity
            assert set(live.members) == set(live.states)
            in_room = {i.player_id for _, i in registry.all() if i.room_id == room_id}
            assert in_room == set(live.members)
        else:
            assert all(i.room_id != room_id for _, i in registry.all())
