import logging

import settings
from models.relationships import friends_of, incoming_of, keys_of, outgoing_of
from services import friendship
from services.concurrency import Transactor
from services.directory import Directory
from services.errors import SelfReference, UnknownTarget
from services.friendship import Rule
from services.store import RelationshipStore

logger = logging.getLogger("friendgraph.relationships")


class RelationshipService:
    """The friendship operations available to an authenticated user"""

    def __init__(
        self,
        store: RelationshipStore,
        directory: Directory,
        *,
        ignore_clears_sender: bool | None = None,
        transactor: Transactor | None = None,
    ):
        self.store = store
        self.directory = directory
        self.transactor = transactor or Transactor(store)
        if ignore_clears_sender is None:
            ignore_clears_sender = settings.IGNORE_CLEARS_SENDER
        self.ignore_clears_sender = ignore_clears_sender

    async def _run(self, rule: Rule, actor: str, target: str, **options) -> str:
        """Run a pair command, returning the new status of the pair"""
        changes = await self.transactor.run(
            friendship.pair_keys(actor, target),
            lambda snapshot: rule(snapshot, actor, target, **options),
        )
        logger.debug(
            f"{rule.__name__} {actor} -> {target}: {len(changes.writes)} records"
        )
        return friendship.relationship_status(changes.result(), actor, target)

    async def send_request(self, actor: str, target: str) -> str:
        if actor == target:
            raise SelfReference("You cannot request yourself.")
        if not await self.directory.exists(target):
            raise UnknownTarget()
        return await self._run(friendship.send_request, actor, target)

    async def accept_request(self, actor: str, target: str) -> str:
        return await self._run(friendship.accept_request, actor, target)

    async def ignore_request(self, actor: str, target: str) -> str:
        return await self._run(
            friendship.ignore_request,
            actor,
            target,
            clear_sender=self.ignore_clears_sender,
        )

    async def cancel_request(self, actor: str, target: str) -> str:
        return await self._run(friendship.cancel_request, actor, target)

    async def remove_friend(self, actor: str, target: str) -> str:
        return await self._run(friendship.remove_friend, actor, target)

    async def _list(self, key) -> list[str]:
        snapshot = await self.transactor.read([key])
        return sorted(snapshot.members(key))

    async def list_friends(self, actor: str) -> list[str]:
        return await self._list(friends_of(actor))

    async def list_incoming(self, actor: str) -> list[str]:
        return await self._list(incoming_of(actor))

    async def list_outgoing(self, actor: str) -> list[str]:
        return await self._list(outgoing_of(actor))

    async def relationship_status(self, actor: str, target: str) -> str:
        if actor == target:
            return "self"
        snapshot = await self.transactor.read(keys_of(actor))
        return friendship.relationship_status(snapshot, actor, target)

    async def purge_user(self, user_id: str) -> int:
        """Remove every trace of the user from the relationship records.

        To be called when the account is deleted. Returns how many records
        were rewritten.
        """
        planned: set[str] = set()

        async def plan():
            own = await self.transactor.read(keys_of(user_id))
            # an interrupted attempt may have emptied our records already: keep
            # whoever it planned for
            planned.update(friendship.counterparts(own, user_id))
            return friendship.purge_keys(user_id, planned)

        changes = await self.transactor.run(
            plan, lambda snapshot: friendship.purge_user(snapshot, user_id, planned)
        )
        logger.info(
            f"Purged {user_id} from {len(planned)} counterparts,"
            f" {len(changes.writes)} records rewritten"
        )
        return len(changes.writes)

