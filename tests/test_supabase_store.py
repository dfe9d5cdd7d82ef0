from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, call, patch

import pytest
from supabase import PostgrestAPIError

from dinopedia.errors import ConfigurationError, NotFoundError
from dinopedia.services import supabase as db


def _fake_client():
    fake_table = MagicMock()
    fake_client = MagicMock()
    fake_client.table.return_value = fake_table
    return fake_client, fake_table


def _rows(*rows):
    return SimpleNamespace(data=list(rows))


@pytest.mark.asyncio
async def test_get_dinosaurs_attaches_images_in_one_query():
    fake_client, fake_table = _fake_client()
    to_thread = AsyncMock(
        side_effect=[
            _rows({"id": "1", "name": "Ankylosaurus"}, {"id": "2", "name": "Brachiosaurus"}),
            _rows({"dinosaur_id": "1", "url": "https://example.org/a.jpg", "description": None}),
        ]
    )

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        result = await db.get_dinosaurs()

    assert result[0]["images"] == [{"url": "https://example.org/a.jpg", "description": None}]
    assert result[1]["images"] == []
    fake_table.select.return_value.order.assert_called_once_with("name")
    fake_table.select.return_value.in_.assert_called_once_with("dinosaur_id", ["1", "2"])
    assert fake_client.table.call_args_list == [call("dinosaurs"), call("dinosaur_images")]


@pytest.mark.asyncio
async def test_get_dinosaurs_degrades_when_image_query_fails():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(
        side_effect=[
            _rows({"id": "1", "name": "Ankylosaurus"}),
            PostgrestAPIError({"message": "permission denied", "code": "42501"}),
        ]
    )

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        result = await db.get_dinosaurs()

    assert result == [{"id": "1", "name": "Ankylosaurus", "images": []}]


@pytest.mark.asyncio
async def test_get_dinosaurs_empty_table_skips_image_query():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(return_value=_rows())

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        assert await db.get_dinosaurs() == []

    to_thread.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_dinosaur_includes_fossils_and_images():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(
        side_effect=[
            _rows({"id": "1", "name": "Ankylosaurus"}),
            _rows({"id": "f1", "dinosaur_id": "1", "discovery_location": "Montana"}),
            _rows({"url": "https://example.org/a.jpg", "description": "Armor"}),
        ]
    )

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        result = await db.get_dinosaur("1")

    assert result["fossils"][0]["discovery_location"] == "Montana"
    assert result["images"] == [{"url": "https://example.org/a.jpg", "description": "Armor"}]


@pytest.mark.asyncio
async def test_get_dinosaur_returns_none_for_unknown_id():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(return_value=_rows())

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        assert await db.get_dinosaur("missing") is None

    to_thread.assert_awaited_once()


@pytest.mark.asyncio
async def test_search_dinosaurs_matches_name_scientific_name_and_description():
    fake_client, fake_table = _fake_client()
    expected = [{"id": "1", "name": "Tyrannosaurus"}]

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=AsyncMock(return_value=_rows(*expected))),
    ):
        result = await db.search_dinosaurs("rex")

    assert result == expected
    fake_table.select.return_value.or_.assert_called_once_with(
        "name.ilike.%rex%,scientific_name.ilike.%rex%,description.ilike.%rex%"
    )


@pytest.mark.asyncio
async def test_create_dinosaur_only_writes_record_columns():
    fake_client, fake_table = _fake_client()
    created = {"id": "1", "name": "Iguanodon"}

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=AsyncMock(return_value=_rows(created))) as to_thread,
    ):
        result = await db.create_dinosaur({"name": "Iguanodon", "period": "白垩纪早期", "images": []})

    assert result == created
    fake_table.insert.assert_called_once_with({"name": "Iguanodon", "period": "白垩纪早期"})
    to_thread.assert_awaited_once_with(fake_table.insert.return_value.execute)


@pytest.mark.asyncio
async def test_update_dinosaur_raises_not_found_when_no_rows_change():
    fake_client, _ = _fake_client()

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=AsyncMock(return_value=_rows())),
    ):
        with pytest.raises(NotFoundError):
            await db.update_dinosaur("missing", {"diet": "植食性"})


@pytest.mark.asyncio
async def test_delete_dinosaur_cascades_before_deleting_record():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(side_effect=[_rows(), _rows(), _rows({"id": "1"})])

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        await db.delete_dinosaur("1")

    assert fake_client.table.call_args_list == [
        call("dinosaur_fossils"),
        call("dinosaur_images"),
        call("dinosaurs"),
    ]


@pytest.mark.asyncio
async def test_delete_dinosaur_raises_not_found():
    fake_client, _ = _fake_client()
    to_thread = AsyncMock(return_value=_rows())

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=to_thread),
    ):
        with pytest.raises(NotFoundError):
            await db.delete_dinosaur("missing")


@pytest.mark.asyncio
async def test_add_images_sets_dinosaur_id():
    fake_client, fake_table = _fake_client()

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=AsyncMock(return_value=_rows())),
    ):
        await db.add_images("7", [{"url": "https://example.org/a.jpg"}])

    fake_table.insert.assert_called_once_with(
        [{"url": "https://example.org/a.jpg", "dinosaur_id": "7"}]
    )


@pytest.mark.asyncio
async def test_delete_image_raises_not_found_for_unknown_url():
    fake_client, fake_table = _fake_client()

    with (
        patch("dinopedia.services.supabase.client", return_value=fake_client),
        patch("dinopedia.services.supabase.asyncio.to_thread", new=AsyncMock(return_value=_rows())),
    ):
        with pytest.raises(NotFoundError):
            await db.delete_image("7", "https://example.org/missing.jpg")

    fake_table.delete.return_value.eq.return_value.eq.assert_called_once_with(
        "url", "https://example.org/missing.jpg"
    )


def test_get_client_requires_service_credentials():
    with patch("dinopedia.services.supabase.settings") as mock_settings:
        mock_settings.supabase_url = ""
        mock_settings.supabase_service_key = ""

        with pytest.raises(ConfigurationError):
            db.get_client()
