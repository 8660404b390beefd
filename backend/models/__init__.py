"""Models package for the friend graph backend"""

from .common import get_db, get_engine, parse_bool
from .relationships import (
    Record,
    RecordKey,
    RelationKind,
    RelationshipRecord,
    friends_of,
    ignored_of,
    incoming_of,
    keys_of,
    outgoing_of,
)

__all__ = [
    "Record",
    "RecordKey",
    "RelationKind",
    "RelationshipRecord",
    "friends_of",
    "get_db",
    "get_engine",
    "ignored_of",
    "incoming_of",
    "keys_of",
    "outgoing_of",
    "parse_bool",
]
