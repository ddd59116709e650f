import re

import pytest

from westock.crud.share_crud import (
    MAX_SHARE_ITEM_BYTES,
    MEDIA_OMITTED_NOTE,
    build_share_item_entry,
    degrade_item,
)
from westock.models.identity import UserIdentity
from westock.share import (
    ShareExporter,
    ShareImporter,
    make_share_token,
    parse_share_token,
)
from westock.sync_engine import SyncEngine

from conftest import make_bundle, make_item

TOKEN_PATTERN = re.compile(r"^WS-[A-Za-z0-9]{20}$")


@pytest.fixture
def exporter(repository, shares, share_items):
    return ShareExporter(repository, shares, share_items)


@pytest.fixture
def importer(other_repository, shares, share_items):
    """Importer on a second device that shares nothing with the exporter's store."""
    return ShareImporter(other_repository, shares, share_items)


def seed_summer_bundle(repository):
    repository.add_item(make_item("1", "Tee"))
    repository.add_item(make_item("2", "Shorts", location="drawer"))
    repository.add_item(make_item("3", "Unshared"))
    repository.add_bundle(make_bundle("b1", ["1", "2"], name="Summer"))


class TestTokens:
    def test_parse(self):
        assert parse_share_token("WS-abc123") == "abc123"
        assert parse_share_token("  WS-abc123\n") == "abc123"

    @pytest.mark.parametrize("token", ["", "WS-", "ws-abc123", "abc123", "XWS-abc", "WS-a/b", None])
    def test_parse_rejects(self, token):
        assert parse_share_token(token) is None

    def test_make(self):
        assert make_share_token("abc") == "WS-abc"


class TestExport:
    @pytest.mark.asyncio
    async def test_writes_record_and_items(self, repository, exporter, shares, share_items):
        seed_summer_bundle(repository)

        token = await exporter.export_bundle("b1")

        assert TOKEN_PATTERN.match(token)
        share_id = parse_share_token(token)
        record = shares.get(share_id, share_id)
        assert record["type"] == "westock_transfer"
        assert record["itemCount"] == 2
        assert record["bundle"]["id"] == "b1"
        stored = sorted(entry["item"]["id"] for entry in share_items.in_partition(share_id))
        assert stored == ["1", "2"]

    @pytest.mark.asyncio
    async def test_missing_items_are_left_out(self, repository, exporter, shares, share_items):
        repository.add_item(make_item("1"))
        repository.add_bundle(make_bundle("b1", ["1", "deleted"]))

        token = await exporter.export_bundle("b1")

        share_id = parse_share_token(token)
        assert shares.get(share_id, share_id)["itemCount"] == 1
        assert len(share_items.in_partition(share_id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_bundle_gives_empty_token(self, exporter, shares):
        assert await exporter.export_bundle("nope") == ""
        assert shares.documents == {}

    @pytest.mark.asyncio
    async def test_remote_failure_gives_empty_token(self, repository, exporter, shares):
        seed_summer_bundle(repository)
        shares.fail_on.add("create_item")
        assert await exporter.export_bundle("b1") == ""

    @pytest.mark.asyncio
    async def test_item_write_failure_gives_empty_token(self, repository, exporter, share_items):
        seed_summer_bundle(repository)
        share_items.fail_on.add("upsert_item")
        assert await exporter.export_bundle("b1") == ""


class TestOversizedItems:
    def test_small_item_is_kept_whole(self):
        item = make_item("1", image_url="data:image/jpeg;base64,AAAA")
        entry = build_share_item_entry("share", item)
        assert entry.degraded is False
        assert entry.item.image_url == item.image_url

    def test_large_item_loses_only_media(self):
        item = make_item(
            "1",
            note="cotton",
            location="box 2",
            image_url="data:image/jpeg;base64," + "A" * (MAX_SHARE_ITEM_BYTES + 1),
        )
        entry = build_share_item_entry("share", item)

        assert entry.degraded is True
        assert entry.item.image_url is None
        assert MEDIA_OMITTED_NOTE in entry.item.note
        assert entry.item.note.startswith("cotton")
        assert entry.item.model_dump(exclude={"image_url", "note"}) == item.model_dump(
            exclude={"image_url", "note"}
        )

    def test_degrade_without_note(self):
        assert degrade_item(make_item("1")).note == MEDIA_OMITTED_NOTE

    @pytest.mark.asyncio
    async def test_oversized_item_round_trips(
        self, repository, other_repository, exporter, importer, share_items
    ):
        big = make_item("1", image_url="data:image/jpeg;base64," + "A" * 1_000_000)
        repository.add_item(big)
        repository.add_bundle(make_bundle("b1", ["1"]))

        token = await exporter.export_bundle("b1")
        share_id = parse_share_token(token)
        (entry,) = share_items.in_partition(share_id)
        assert "imageUrl" not in entry["item"]
        assert entry["degraded"] is True

        assert await importer.import_token(token) is True
        imported = other_repository.get_item("1")
        assert imported.image_url is None
        assert imported.name == big.name
        assert imported.stock == big.stock
        assert imported.created_at == big.created_at


class TestImport:
    @pytest.mark.asyncio
    async def test_round_trip_to_empty_device(
        self, repository, other_repository, exporter, importer
    ):
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")

        assert await importer.import_token(token) is True

        doc = other_repository.document()
        assert sorted(i.id for i in doc.items) == ["1", "2"]
        assert [b.id for b in doc.bundles] == ["b1"]
        assert doc.bundles[0].item_ids == ["1", "2"]
        assert other_repository.get_item("2").location == "drawer"
        assert other_repository.get_item("3") is None

    @pytest.mark.asyncio
    async def test_second_import_adds_nothing(
        self, repository, other_repository, exporter, importer
    ):
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")

        first = await importer.import_token_detailed(token)
        second = await importer.import_token_detailed(token)

        assert sorted(first.item_ids) == ["1", "2"]
        assert first.bundle_ids == ["b1"]
        assert second.imported is True
        assert second.item_ids == []
        assert second.bundle_ids == []
        assert len(other_repository.list_items()) == 2
        assert len(other_repository.list_bundles()) == 1

    @pytest.mark.asyncio
    async def test_local_items_win_on_conflict(
        self, repository, other_repository, exporter, importer
    ):
        seed_summer_bundle(repository)
        other_repository.add_item(make_item("1", "My own tee"))
        token = await exporter.export_bundle("b1")

        assert await importer.import_token(token) is True
        assert other_repository.get_item("1").name == "My own tee"
        assert other_repository.get_item("2").name == "Shorts"

    @pytest.mark.asyncio
    async def test_rejects_bad_prefix(self, importer, shares):
        shares.fail_on.add("read_item")
        assert await importer.import_token("ws-abc") is False
        assert await importer.import_token("hello") is False

    @pytest.mark.asyncio
    async def test_unknown_token(self, importer, other_repository):
        assert await importer.import_token("WS-doesnotexist") is False
        assert other_repository.document().is_empty()

    @pytest.mark.asyncio
    async def test_not_a_share_record(self, importer, shares):
        shares.documents[("abc", "abc")] = {
            "id": "abc",
            "type": "something_else",
            "bundle": make_bundle().model_dump(mode="json", by_alias=True),
            "itemCount": 0,
        }
        assert await importer.import_token("WS-abc") is False

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_no_partial_state(
        self, repository, other_repository, exporter, importer, share_items
    ):
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")
        share_items.fail_on.add("query_items")

        assert await importer.import_token(token) is False
        assert other_repository.document().is_empty()

    @pytest.mark.asyncio
    async def test_tolerates_fewer_items_than_declared(
        self, repository, other_repository, exporter, importer, share_items
    ):
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")
        # Simulate an export that stopped after writing one item
        lost = next(
            key for key, doc in share_items.documents.items() if doc["item"]["id"] == "2"
        )
        del share_items.documents[lost]

        assert await importer.import_token(token) is True
        assert [i.id for i in other_repository.list_items()] == ["1"]
        assert other_repository.get_bundle("b1").item_ids == ["1", "2"]

    @pytest.mark.asyncio
    async def test_malformed_item_entries_are_skipped(
        self, repository, other_repository, exporter, importer, share_items
    ):
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")
        share_id = parse_share_token(token)
        share_items.documents[(share_id, "junk")] = {"id": "junk", "shareId": share_id}

        assert await importer.import_token(token) is True
        assert sorted(i.id for i in other_repository.list_items()) == ["1", "2"]

    @pytest.mark.asyncio
    async def test_import_is_pushed_when_signed_in(
        self, repository, other_store, other_repository, exporter, importer, user_documents
    ):
        engine = SyncEngine(other_store, user_documents, identity=UserIdentity(uid="bob"))
        seed_summer_bundle(repository)
        token = await exporter.export_bundle("b1")

        assert await importer.import_token(token) is True
        await engine.drain()

        remote = user_documents.get("bob", "bob")
        assert sorted(i["id"] for i in remote["items"]) == ["1", "2"]
