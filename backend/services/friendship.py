"""Friendship rules.

Every rule is pure: it receives a ``Snapshot`` of the records involved in the
command and returns the ``Changes`` to write back, or raises one of the
``services.errors`` rejections. Reading and writing the store is the job of
``services.concurrency``.
"""

import logging
from typing import Callable, Iterable, Mapping

from models.relationships import (
    Record,
    RecordKey,
    friends_of,
    ignored_of,
    incoming_of,
    keys_of,
    outgoing_of,
)
from services.errors import (
    AlreadyFriends,
    NoOutgoingRequest,
    NoPendingRequest,
    NotFriends,
    RequestExists,
    SelfReference,
    WriteConflict,
)

logger = logging.getLogger("friendgraph.friendship")


class Snapshot:
    """The records read for a command, absent records being empty."""

    def __init__(self, records: Mapping[RecordKey, Record]):
        self.records = dict(records)

    def __contains__(self, key: RecordKey) -> bool:
        return key in self.records

    def members(self, key: RecordKey) -> frozenset[str]:
        if key not in self.records:
            # rules may only look at what the command asked to read
            raise KeyError(f"{key} was not read for this command")
        return self.records[key].members

    def revision(self, key: RecordKey) -> int:
        return self.records[key].revision

    def has(self, key: RecordKey, user_id: str) -> bool:
        return user_id in self.members(key)


class Changes:
    """New record values computed from a snapshot."""

    def __init__(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self._values: dict[RecordKey, set[str]] = {}

    def _value(self, key: RecordKey) -> set[str]:
        if key not in self._values:
            self._values[key] = set(self.snapshot.members(key))
        return self._values[key]

    def add(self, key: RecordKey, user_id: str):
        self._value(key).add(user_id)

    def discard(self, key: RecordKey, user_id: str):
        self._value(key).discard(user_id)

    def clear(self, key: RecordKey):
        self._value(key).clear()

    @property
    def writes(self) -> dict[RecordKey, frozenset[str]]:
        """Only the records whose members actually changed, in key order"""
        return {
            key: frozenset(value)
            for key, value in sorted(self._values.items())
            if frozenset(value) != self.snapshot.members(key)
        }

    def __bool__(self):
        return bool(self.writes)

    def result(self) -> Snapshot:
        """The snapshot as it looks once the writes landed"""
        records = dict(self.snapshot.records)
        for key, members in self.writes.items():
            records[key] = Record(members, self.snapshot.revision(key) + 1)
        return Snapshot(records)


Rule = Callable[[Snapshot, str, str], Changes]


def pair_keys(actor: str, target: str) -> list[RecordKey]:
    """Everything a pair command may read: all of both users' records"""
    return sorted(set(keys_of(actor) + keys_of(target)))


def _clear_requests(changes: Changes, a: str, b: str):
    # the whole pair, both directions, whatever the expected state was
    changes.discard(ignored_of(a), b)
    changes.discard(ignored_of(b), a)
    changes.discard(incoming_of(a), b)
    changes.discard(outgoing_of(a), b)
    changes.discard(incoming_of(b), a)
    changes.discard(outgoing_of(b), a)


def _befriend(changes: Changes, a: str, b: str):
    changes.add(friends_of(a), b)
    changes.add(friends_of(b), a)
    _clear_requests(changes, a, b)


def _finish_friendship(snapshot: Snapshot, a: str, b: str) -> Changes | None:
    """None unless either side lists the other as a friend.

    The changes are empty for a settled friendship, otherwise they complete
    the one an interrupted command left half written.
    """
    if not (snapshot.has(friends_of(a), b) or snapshot.has(friends_of(b), a)):
        return None
    changes = Changes(snapshot)
    _befriend(changes, a, b)
    if changes:
        logger.warning(f"Completing the friendship between {a} and {b}")
    return changes


def send_request(snapshot: Snapshot, actor: str, target: str) -> Changes:
    if actor == target:
        raise SelfReference("You cannot request yourself.")
    finished = _finish_friendship(snapshot, actor, target)
    if finished is not None:
        if finished:
            return finished
        raise AlreadyFriends()
    if snapshot.has(outgoing_of(actor), target):
        raise RequestExists()

    changes = Changes(snapshot)
    if snapshot.has(outgoing_of(target), actor):
        logger.debug(f"Crossed requests between {actor} and {target}, befriending")
        _befriend(changes, actor, target)
    else:
        changes.add(outgoing_of(actor), target)
        changes.add(incoming_of(target), actor)
        changes.discard(ignored_of(target), actor)
    return changes


def accept_request(snapshot: Snapshot, actor: str, target: str) -> Changes:
    """The actor accepts the request the target sent"""
    if actor == target:
        raise SelfReference()
    finished = _finish_friendship(snapshot, actor, target)
    if finished is not None:
        if finished:
            return finished
        raise NoPendingRequest()
    incoming = snapshot.has(incoming_of(actor), target)
    outgoing = snapshot.has(outgoing_of(target), actor)
    if not (incoming and outgoing):
        if outgoing and snapshot.has(ignored_of(actor), target):
            raise NoPendingRequest()
        if incoming or outgoing:
            logger.warning(
                f"Inconsistent request {target} -> {actor}:"
                f" incoming={incoming} outgoing={outgoing}"
            )
            raise NoPendingRequest("Request invalid.")
        raise NoPendingRequest()

    changes = Changes(snapshot)
    _befriend(changes, actor, target)
    return changes


def ignore_request(
    snapshot: Snapshot, actor: str, target: str, *, clear_sender: bool = False
) -> Changes:
    """The actor declines the target's request.

    The sender keeps seeing the request as outgoing unless ``clear_sender``.
    While it does, the actor keeps the sender among the ignored ones so the
    leftover can be found from either side.
    """
    leftover = clear_sender and snapshot.has(outgoing_of(target), actor)
    if not (snapshot.has(incoming_of(actor), target) or leftover):
        raise NoPendingRequest()

    changes = Changes(snapshot)
    changes.discard(incoming_of(actor), target)
    if clear_sender:
        changes.discard(outgoing_of(target), actor)
        changes.discard(ignored_of(actor), target)
    else:
        changes.add(ignored_of(actor), target)
    return changes


def cancel_request(snapshot: Snapshot, actor: str, target: str) -> Changes:
    if not snapshot.has(outgoing_of(actor), target):
        raise NoOutgoingRequest()

    changes = Changes(snapshot)
    changes.discard(outgoing_of(actor), target)
    changes.discard(incoming_of(target), actor)
    changes.discard(ignored_of(target), actor)
    return changes


def remove_friend(snapshot: Snapshot, actor: str, target: str) -> Changes:
    """Either side listing the other is enough, the whole pair is cleared"""
    if not (
        snapshot.has(friends_of(actor), target)
        or snapshot.has(friends_of(target), actor)
    ):
        raise NotFriends()

    changes = Changes(snapshot)
    changes.discard(friends_of(actor), target)
    changes.discard(friends_of(target), actor)
    _clear_requests(changes, actor, target)
    return changes


def relationship_status(snapshot: Snapshot, actor: str, target: str) -> str:
    """Possible statuses: self, friends, pending_outgoing, pending_incoming, none"""
    if actor == target:
        return "self"
    if snapshot.has(friends_of(actor), target):
        return "friends"
    if snapshot.has(outgoing_of(actor), target):
        return "pending_outgoing"
    if snapshot.has(incoming_of(actor), target):
        return "pending_incoming"
    return "none"


def counterparts(snapshot: Snapshot, user_id: str) -> set[str]:
    """Everyone the user's own records point at, ignored senders included"""
    found = set()
    for key in keys_of(user_id):
        found.update(snapshot.members(key))
    found.discard(user_id)
    return found


def purge_keys(user_id: str, others: Iterable[str]) -> list[RecordKey]:
    keys = set(keys_of(user_id))
    for other in others:
        keys.update(keys_of(other))
    return sorted(keys)


def purge_user(snapshot: Snapshot, user_id: str, planned: Iterable[str]) -> Changes:
    """Forget the user: empty their records and drop them from everyone else's.

    ``planned`` are the counterparts whose records were read; if the user's
    records now reference someone else the plan is stale.
    """
    missing = counterparts(snapshot, user_id) - set(planned)
    if missing:
        raise WriteConflict(keys_of(user_id)[0])

    changes = Changes(snapshot)
    for other in planned:
        for key in keys_of(other):
            changes.discard(key, user_id)
    for key in keys_of(user_id):
        changes.clear(key)
    return changes
