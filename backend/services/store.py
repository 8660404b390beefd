"""Key-value storage of the relationship records.

Reads and writes are single key. Backends with ``conditional_writes`` accept
an ``expected_revision`` on ``put`` and raise ``WriteConflict`` when the
record moved on since it was read.
"""

import asyncio
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel

from models.common import get_db
from models.relationships import Record, RecordKey, RelationshipRecord
from services.errors import StoreUnavailable, WriteConflict

logger = logging.getLogger("friendgraph.store")


class RelationshipStore:
    conditional_writes = False

    async def get(self, key: RecordKey) -> Record:
        raise NotImplementedError

    async def put(
        self,
        key: RecordKey,
        members: frozenset[str],
        *,
        expected_revision: int | None = None,
    ) -> Record:
        """Overwrite the record; ``expected_revision`` is honoured only by
        backends with conditional writes"""
        raise NotImplementedError

    async def get_many(self, keys: list[RecordKey]) -> dict[RecordKey, Record]:
        return {key: await self.get(key) for key in keys}

    async def close(self):
        pass


class MemoryStore(RelationshipStore):
    """Process-local store, mostly for tests and single instance setups.

    With ``conditional_writes=False`` it behaves like a plain last-writer-wins
    key-value store.
    """

    def __init__(self, conditional_writes: bool = True):
        self.conditional_writes = conditional_writes
        self._records: dict[RecordKey, Record] = {}

    async def get(self, key: RecordKey) -> Record:
        await asyncio.sleep(0)  # behave like I/O: let others run
        return self._records.get(key, Record())

    async def put(self, key, members, *, expected_revision=None) -> Record:
        await asyncio.sleep(0)
        current = self._records.get(key, Record())
        if (
            self.conditional_writes
            and expected_revision is not None
            and current.revision != expected_revision
        ):
            raise WriteConflict(key, expected_revision)
        record = Record(frozenset(members), current.revision + 1)
        self._records[key] = record
        return record

    def dump(self) -> dict[RecordKey, frozenset[str]]:
        """Non empty records, handy to check invariants"""
        return {k: r.members for k, r in self._records.items() if r.members}


class SQLStore(RelationshipStore):
    """Records in the ``relationship_records`` table, revision checked with
    ``UPDATE ... WHERE revision = :expected``"""

    conditional_writes = True

    def __init__(self, engine, create_tables: bool = False):
        self.engine = engine
        if create_tables:
            SQLModel.metadata.create_all(engine, tables=[RelationshipRecord.__table__])

    async def get(self, key: RecordKey) -> Record:
        try:
            with get_db(self.engine) as session:
                row = session.get(RelationshipRecord, (key.kind, key.user_id))
        except SQLAlchemyError as e:
            logger.exception(f"Cannot read {key}")
            raise StoreUnavailable() from e
        if row is None:
            return Record()
        return Record(frozenset(row.members or []), row.revision)

    async def put(self, key, members, *, expected_revision=None) -> Record:
        values = sorted(members)
        try:
            with get_db(self.engine) as session:
                if expected_revision is None:
                    return self._overwrite(session, key, values)
                if expected_revision == 0:
                    # absent when read: whoever inserts first wins
                    session.add(
                        RelationshipRecord(
                            kind=key.kind, user_id=key.user_id, members=values
                        )
                    )
                    session.commit()
                    return Record(frozenset(values), 1)

                result = session.execute(
                    update(RelationshipRecord)
                    .where(
                        RelationshipRecord.kind == key.kind,
                        RelationshipRecord.user_id == key.user_id,
                        RelationshipRecord.revision == expected_revision,
                    )
                    .values(members=values, revision=expected_revision + 1)
                )
                if result.rowcount != 1:
                    raise WriteConflict(key, expected_revision)
                session.commit()
                return Record(frozenset(values), expected_revision + 1)
        except IntegrityError as e:
            raise WriteConflict(key, expected_revision) from e
        except SQLAlchemyError as e:
            logger.exception(f"Cannot write {key}")
            raise StoreUnavailable() from e

    @staticmethod
    def _overwrite(session, key: RecordKey, values: list[str]) -> Record:
        row = session.get(RelationshipRecord, (key.kind, key.user_id))
        if row:
            row.members = values
            row.revision += 1
        else:
            row = RelationshipRecord(kind=key.kind, user_id=key.user_id, members=values)
        session.add(row)
        session.commit()
        return Record(frozenset(values), row.revision)

    async def close(self):
        self.engine.dispose()


def build_store(backend: str | None = None) -> RelationshipStore:
    import settings

    backend = backend or settings.STORE_BACKEND
    match backend:
        case "memory":
            logger.warning("Using the in-memory relationship store")
            return MemoryStore()
        case "sql":
            from models.common import get_engine

            return SQLStore(get_engine())
        case _:
            raise ValueError(f"Unknown store backend: {backend}")
