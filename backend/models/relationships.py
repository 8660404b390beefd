"""Relationship records: one set of user ids per (kind, user)"""

from dataclasses import dataclass
from enum import Enum

from sqlmodel import SQLModel, Field, Column, JSON


class RelationKind(str, Enum):
    friends = "friends"
    incoming = "incoming"
    outgoing = "outgoing"
    # senders whose request the user ignored, still pending on their side
    ignored = "ignored"


@dataclass(frozen=True, order=True)
class RecordKey:
    kind: RelationKind
    user_id: str

    def __str__(self):
        return f"{self.kind.value}:{self.user_id}"


def friends_of(user_id: str) -> RecordKey:
    return RecordKey(RelationKind.friends, user_id)


def incoming_of(user_id: str) -> RecordKey:
    return RecordKey(RelationKind.incoming, user_id)


def outgoing_of(user_id: str) -> RecordKey:
    return RecordKey(RelationKind.outgoing, user_id)


def ignored_of(user_id: str) -> RecordKey:
    return RecordKey(RelationKind.ignored, user_id)


def keys_of(user_id: str) -> list[RecordKey]:
    return [
        friends_of(user_id),
        incoming_of(user_id),
        outgoing_of(user_id),
        ignored_of(user_id),
    ]


@dataclass(frozen=True)
class Record:
    """A record value as read from the store.

    revision 0 means the record does not exist yet (and members is empty).
    """

    members: frozenset[str] = frozenset()
    revision: int = 0


class RelationshipRecord(SQLModel, table=True):
    __tablename__ = "relationship_records"

    kind: RelationKind = Field(primary_key=True)
    user_id: str = Field(primary_key=True)
    members: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    revision: int = Field(default=1, nullable=False)
