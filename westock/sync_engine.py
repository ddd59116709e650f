"""
Mirror the local document to the signed-in user's remote document.

The engine holds one piece of state, the bound identity. Binding pulls the
remote copy, which replaces local data outright; while bound, every local
save is pushed in the background. There is no merge and no versioning:
each identity is expected to be driven from one device at a time, and the
last full write to reach the remote store wins.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional, Tuple

from azure.cosmos.aio import ContainerProxy

from westock.crud.user_document_crud import read_user_document, write_user_document
from westock.exceptions import (
    DatabaseError,
    NoIdentityError,
    RemoteDocumentNotFoundError,
)
from westock.local_store import LocalStore
from westock.logging_config import get_child_logger, tracer
from westock.models.document import AppDocument
from westock.models.identity import UserIdentity

logger = get_child_logger("sync")


class SyncDirection(str, Enum):
    UP = "up"  # local overwrites remote
    DOWN = "down"  # remote overwrites local


class SyncOutcome(str, Enum):
    """What happened when an identity was bound."""

    PULLED = "pulled"
    BOOTSTRAPPED = "bootstrapped"
    NOTHING = "nothing"
    FAILED = "failed"


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        container: Optional[ContainerProxy],
        identity: Optional[UserIdentity] = None,
    ):
        """
        Args:
            store: Local store whose document is mirrored
            container: Cosmos DB container with one document per user, or
                None when no remote store is configured
            identity: User already signed in. Saves are pushed for this
                user straight away; call ``bind`` to also pull.
        """
        self._store = store
        self._container = container
        self._identity: Optional[UserIdentity] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._pusher: Optional[asyncio.Task] = None
        self._next_push: Optional[Tuple[UserIdentity, AppDocument]] = None
        if identity is not None:
            self._attach(identity)

    @property
    def identity(self) -> Optional[UserIdentity]:
        return self._identity

    @property
    def is_bound(self) -> bool:
        return self._identity is not None

    @property
    def remote_configured(self) -> bool:
        return self._container is not None

    # -------------------------------------------------------------------------
    # Identity changes
    # -------------------------------------------------------------------------

    def _attach(self, identity: UserIdentity) -> None:
        self._identity = identity
        self._unsubscribe = self._store.subscribe_saved(self._on_saved)

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._identity = None

    async def bind(self, identity: UserIdentity) -> SyncOutcome:
        """
        Bind ``identity`` and pull its remote document.

        If the user has a remote document it replaces the local one. If not,
        and there is local data, the local document is pushed so the remote
        copy exists from now on. Remote errors are logged and leave local
        data as it was.
        """
        if self._identity != identity:
            self._detach()
            self._attach(identity)
        logger.info("Identity bound", extra={"user_id": identity.uid})
        return await self._pull_on_login(identity)

    def unbind(self) -> None:
        """Forget the identity. Local saves continue without remote pushes."""
        if self._identity is not None:
            logger.info("Identity unbound", extra={"user_id": self._identity.uid})
        self._detach()

    async def on_identity_changed(
        self, identity: Optional[UserIdentity]
    ) -> Optional[SyncOutcome]:
        """Entry point for the auth provider's signed-in/signed-out callback."""
        if identity is None:
            self.unbind()
            return None
        return await self.bind(identity)

    async def _pull_on_login(self, identity: UserIdentity) -> SyncOutcome:
        if self._container is None:
            logger.info("Remote store not configured, staying local")
            return SyncOutcome.NOTHING

        with tracer.start_as_current_span("sync_pull_on_login") as span:
            span.set_attribute("user.id", identity.uid)
            try:
                remote = await read_user_document(self._container, identity.uid)
                if remote is not None:
                    if not self._store.replace(remote, from_remote=True):
                        span.set_attribute("error", True)
                        logger.error("Pulled remote document could not be stored locally")
                        return SyncOutcome.FAILED
                    span.set_attribute("sync.outcome", SyncOutcome.PULLED.value)
                    return SyncOutcome.PULLED

                local = self._store.load()
                if local.is_empty():
                    span.set_attribute("sync.outcome", SyncOutcome.NOTHING.value)
                    return SyncOutcome.NOTHING

                await write_user_document(self._container, identity.uid, local)
                span.set_attribute("sync.outcome", SyncOutcome.BOOTSTRAPPED.value)
                return SyncOutcome.BOOTSTRAPPED
            except DatabaseError as e:
                span.set_attribute("error", True)
                logger.warning(
                    f"Sync on sign-in failed, keeping local data: {e}",
                    extra={"user_id": identity.uid},
                )
                return SyncOutcome.FAILED

    # -------------------------------------------------------------------------
    # Background push
    # -------------------------------------------------------------------------

    def _on_saved(self, doc: AppDocument) -> None:
        identity = self._identity
        if identity is None or self._container is None:
            return

        snapshot = doc.model_copy(deep=True)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop, remote push skipped",
                extra={"user_id": identity.uid},
            )
            return

        # One push in flight at a time; later saves replace the waiting snapshot
        self._next_push = (identity, snapshot)
        if self._pusher is None or self._pusher.done() or self._pusher.get_loop() is not loop:
            self._pusher = loop.create_task(self._push_latest())

    async def _push_latest(self) -> None:
        while self._next_push is not None:
            identity, doc = self._next_push
            self._next_push = None
            await self._push_in_background(identity, doc)

    async def _push_in_background(self, identity: UserIdentity, doc: AppDocument) -> None:
        try:
            await write_user_document(self._container, identity.uid, doc)
        except DatabaseError as e:
            # Local data is already saved; the next successful push catches up
            logger.warning(
                f"Background push failed: {e}", extra={"user_id": identity.uid}
            )

    async def drain(self) -> None:
        """Wait until every save made so far has been pushed."""
        loop = asyncio.get_running_loop()
        while (
            self._pusher is not None
            and not self._pusher.done()
            and self._pusher.get_loop() is loop
        ):
            await asyncio.gather(self._pusher, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Manual override
    # -------------------------------------------------------------------------

    async def force_sync(self, direction: SyncDirection) -> None:
        """
        Overwrite one side with the other, unconditionally.

        Raises:
            NoIdentityError: If no identity is bound
            RemoteDocumentNotFoundError: Pulling and the user has no remote document
            DatabaseError: If the remote store is unavailable or not configured
            LocalStorageError: If the pulled document could not be stored locally
        """
        identity = self._identity
        if identity is None:
            raise NoIdentityError("Sign in before syncing.")
        if self._container is None:
            raise DatabaseError("Remote store is not configured.")

        direction = SyncDirection(direction)
        # Pending background pushes must not land after a forced pull
        await self.drain()
        with tracer.start_as_current_span("force_sync") as span:
            span.set_attribute("user.id", identity.uid)
            span.set_attribute("sync.direction", direction.value)

            if direction is SyncDirection.UP:
                await write_user_document(self._container, identity.uid, self._store.load())
                logger.info("Forced push completed", extra={"user_id": identity.uid})
                return

            remote = await read_user_document(self._container, identity.uid)
            if remote is None:
                span.set_attribute("error", True)
                raise RemoteDocumentNotFoundError(
                    f"No remote document exists for user {identity.uid}."
                )
            if not self._store.replace(remote, from_remote=True):
                span.set_attribute("error", True)
                raise self._store.last_error
            logger.info("Forced pull completed", extra={"user_id": identity.uid})
