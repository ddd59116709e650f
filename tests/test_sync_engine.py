import asyncio

import pytest

from westock.exceptions import DatabaseError, NoIdentityError, RemoteDocumentNotFoundError
from westock.models.document import AppDocument
from westock.models.identity import UserIdentity
from westock.sync_engine import SyncDirection, SyncEngine, SyncOutcome

from conftest import FakeContainer, make_bundle, make_item

ALICE = UserIdentity(uid="alice", email="alice@example.com")


def remote_document(*item_ids) -> AppDocument:
    return AppDocument(items=[make_item(i, f"Remote {i}") for i in item_ids], bundles=[])


def seed_remote(container, uid: str, doc: AppDocument) -> None:
    body = doc.to_wire()
    body["id"] = uid
    container.documents[(uid, uid)] = body


def remote_item_ids(container, uid: str):
    return [item["id"] for item in container.get(uid, uid)["items"]]


class SlowFirstUpsertContainer(FakeContainer):
    """The first upsert takes longer than any later one."""

    def __init__(self):
        super().__init__("id")
        self._upserts = 0

    async def upsert_item(self, body, **kwargs):
        self._upserts += 1
        if self._upserts == 1:
            await asyncio.sleep(0.05)
        return await super().upsert_item(body, **kwargs)


class TestBind:
    @pytest.mark.asyncio
    async def test_remote_overwrites_local(self, store, repository, user_documents):
        repository.add_item(make_item("local"))
        seed_remote(user_documents, "alice", remote_document("r1", "r2"))
        replaced = []
        store.subscribe_replaced(replaced.append)
        engine = SyncEngine(store, user_documents)

        outcome = await engine.bind(ALICE)

        assert outcome is SyncOutcome.PULLED
        assert [i.id for i in store.load().items] == ["r1", "r2"]
        assert len(replaced) == 1
        await engine.drain()
        # The pulled document is not pushed straight back
        assert user_documents.writes == 0

    @pytest.mark.asyncio
    async def test_bootstraps_remote_from_local(self, store, repository, user_documents):
        repository.add_item(make_item("1"))
        engine = SyncEngine(store, user_documents)

        assert await engine.bind(ALICE) is SyncOutcome.BOOTSTRAPPED
        assert remote_item_ids(user_documents, "alice") == ["1"]

    @pytest.mark.asyncio
    async def test_nothing_to_do_when_both_empty(self, store, user_documents):
        engine = SyncEngine(store, user_documents)
        assert await engine.bind(ALICE) is SyncOutcome.NOTHING
        assert user_documents.documents == {}

    @pytest.mark.asyncio
    async def test_remote_error_keeps_local(self, store, repository, user_documents):
        repository.add_item(make_item("1"))
        user_documents.fail_on.add("read_item")
        engine = SyncEngine(store, user_documents)

        assert await engine.bind(ALICE) is SyncOutcome.FAILED
        assert engine.is_bound
        assert [i.id for i in store.load().items] == ["1"]

    @pytest.mark.asyncio
    async def test_without_remote_store(self, store, repository):
        engine = SyncEngine(store, None)
        repository.add_item(make_item("1"))
        assert await engine.bind(ALICE) is SyncOutcome.NOTHING
        assert engine.identity == ALICE
        assert engine.remote_configured is False


class TestPushOnSave:
    @pytest.mark.asyncio
    async def test_save_is_pushed_while_bound(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents)
        await engine.bind(ALICE)

        repository.add_item(make_item("1"))
        repository.add_bundle(make_bundle("b1", ["1"]))
        await engine.drain()

        remote = user_documents.get("alice", "alice")
        assert [i["id"] for i in remote["items"]] == ["1"]
        assert [b["id"] for b in remote["bundles"]] == ["b1"]

    @pytest.mark.asyncio
    async def test_push_failure_does_not_undo_save(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents)
        await engine.bind(ALICE)
        user_documents.fail_on.add("upsert_item")

        assert repository.add_item(make_item("1")) is True
        await engine.drain()

        assert [i.id for i in store.load().items] == ["1"]
        assert user_documents.documents == {}

    @pytest.mark.asyncio
    async def test_no_push_after_unbind(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents)
        await engine.bind(ALICE)
        engine.unbind()

        repository.add_item(make_item("1"))
        await engine.drain()

        assert not engine.is_bound
        assert user_documents.documents == {}

    @pytest.mark.asyncio
    async def test_sign_out_via_identity_callback(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents)
        assert await engine.on_identity_changed(ALICE) is SyncOutcome.NOTHING
        assert await engine.on_identity_changed(None) is None
        repository.add_item(make_item("1"))
        await engine.drain()
        assert user_documents.writes == 0

    @pytest.mark.asyncio
    async def test_identity_given_at_construction_pushes(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents, identity=ALICE)
        repository.add_item(make_item("1"))
        await engine.drain()
        assert remote_item_ids(user_documents, "alice") == ["1"]

    @pytest.mark.asyncio
    async def test_slow_push_is_not_overtaken_by_a_later_one(self, store, repository):
        remote = SlowFirstUpsertContainer()
        engine = SyncEngine(store, remote, identity=ALICE)

        repository.add_item(make_item("1"))
        await asyncio.sleep(0)  # first push is now in flight
        repository.add_item(make_item("2"))
        await engine.drain()

        assert [i.id for i in store.load().items] == ["2", "1"]
        assert remote_item_ids(remote, "alice") == ["2", "1"]

    @pytest.mark.asyncio
    async def test_saves_during_a_push_are_coalesced(self, store, repository):
        remote = SlowFirstUpsertContainer()
        engine = SyncEngine(store, remote, identity=ALICE)

        repository.add_item(make_item("1"))
        await asyncio.sleep(0)
        for item_id in ("2", "3", "4"):
            repository.add_item(make_item(item_id))
        await engine.drain()

        assert remote.writes == 2
        assert remote_item_ids(remote, "alice") == ["4", "3", "2", "1"]

    def test_save_outside_event_loop_still_succeeds(self, store, repository, user_documents):
        SyncEngine(store, user_documents, identity=ALICE)
        assert repository.add_item(make_item("1")) is True
        assert user_documents.documents == {}


class TestForceSync:
    @pytest.mark.asyncio
    async def test_requires_identity(self, store, user_documents):
        engine = SyncEngine(store, user_documents)
        with pytest.raises(NoIdentityError):
            await engine.force_sync(SyncDirection.UP)
        with pytest.raises(NoIdentityError):
            await engine.force_sync(SyncDirection.DOWN)

    @pytest.mark.asyncio
    async def test_down_without_remote_leaves_local(self, store, repository, user_documents):
        repository.add_item(make_item("1"))
        engine = SyncEngine(store, user_documents, identity=ALICE)
        before = store.load().to_wire()

        with pytest.raises(RemoteDocumentNotFoundError):
            await engine.force_sync(SyncDirection.DOWN)

        assert store.load().to_wire() == before

    @pytest.mark.asyncio
    async def test_down_replaces_local(self, store, repository, user_documents):
        engine = SyncEngine(store, user_documents, identity=ALICE)
        repository.add_item(make_item("local"))
        await engine.drain()
        seed_remote(user_documents, "alice", remote_document("r1"))
        replaced = []
        store.subscribe_replaced(replaced.append)

        await engine.force_sync("down")

        assert [i.id for i in store.load().items] == ["r1"]
        assert len(replaced) == 1

    @pytest.mark.asyncio
    async def test_up_overwrites_remote(self, store, repository, user_documents):
        seed_remote(user_documents, "alice", remote_document("r1", "r2"))
        repository.add_item(make_item("local"))
        engine = SyncEngine(store, user_documents, identity=ALICE)

        await engine.force_sync(SyncDirection.UP)

        assert remote_item_ids(user_documents, "alice") == ["local"]

    @pytest.mark.asyncio
    async def test_remote_failure_is_surfaced(self, store, user_documents):
        user_documents.fail_on.add("upsert_item")
        engine = SyncEngine(store, user_documents, identity=ALICE)
        with pytest.raises(DatabaseError):
            await engine.force_sync(SyncDirection.UP)

    @pytest.mark.asyncio
    async def test_not_configured(self, store):
        engine = SyncEngine(store, None, identity=ALICE)
        with pytest.raises(DatabaseError):
            await engine.force_sync(SyncDirection.UP)


@pytest.mark.asyncio
async def test_concurrent_devices_last_push_wins(tmp_path, user_documents):
    from westock.local_store import LocalStore
    from westock.repository import Repository

    phone = LocalStore(tmp_path / "phone" / "westock.db")
    laptop = LocalStore(tmp_path / "laptop" / "westock.db")
    try:
        phone_engine = SyncEngine(phone, user_documents, identity=ALICE)
        laptop_engine = SyncEngine(laptop, user_documents, identity=ALICE)

        Repository(phone).add_item(make_item("from-phone"))
        await phone_engine.drain()
        Repository(laptop).add_item(make_item("from-laptop"))
        await laptop_engine.drain()

        assert remote_item_ids(user_documents, "alice") == ["from-laptop"]
    finally:
        phone.close()
        laptop.close()
