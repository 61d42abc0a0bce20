"""Tests for game entries, the document schema and field decoding."""

from datetime import datetime, timezone
from io import BytesIO

import pytest

from starlette.datastructures import Headers, UploadFile

from showcase.errors import ValidationFailed
from showcase.games import Game
from showcase.server.forms import resolve_image, text_field, to_data_uri
from showcase.store import validate_document


class TestGame:
    """Tests for the Game dataclass."""

    def test_to_dict_uses_document_keys(self):
        """Test serialization to the camelCase document form."""
        created = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        game = Game(
            id="abc",
            title="Pong",
            description="Classic",
            link="https://example.com/pong",
            created_at=created,
        )

        assert game.to_dict() == {
            "id": "abc",
            "title": "Pong",
            "description": "Classic",
            "link": "https://example.com/pong",
            "createdAt": "2026-03-01T12:00:00+00:00",
        }

    def test_to_dict_includes_optional_fields_once_set(self):
        game = Game(
            id="abc",
            title="Pong",
            description="Classic",
            link="https://example.com/pong",
            image="https://cdn/pong.png",
            updated_at=datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc),
        )

        data = game.to_dict()

        assert data["image"] == "https://cdn/pong.png"
        assert data["updatedAt"] == "2026-03-02T08:30:00+00:00"
        assert "createdAt" not in data
        assert Game.from_dict(data) == game

    def test_from_dict_legacy_entry(self):
        """Test entries from the older board: numeric id, empty image, no dates."""
        game = Game.from_dict(
            {
                "id": 1700000000000,
                "title": "Pong",
                "description": "Classic",
                "link": "https://example.com/pong",
                "image": "",
            }
        )

        assert game.id == "1700000000000"
        assert game.image is None
        assert game.created_at is None
        assert game.updated_at is None

    def test_from_dict_parses_timestamps(self):
        game = Game.from_dict(
            {
                "id": "x",
                "title": "T",
                "description": "D",
                "link": "L",
                "createdAt": "2026-03-01T12:00:00Z",
                "updatedAt": "2026-03-02T08:30:00+00:00",
            }
        )

        assert game.created_at == datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert game.updated_at.day == 2


class TestDocumentSchema:
    """Tests for document validation."""

    def test_valid_document(self):
        assert validate_document([]) is None
        assert validate_document(
            [{"id": 1, "title": "T", "description": "D", "link": "L", "image": None}]
        ) is None

    def test_invalid_documents(self):
        assert "array" in validate_document({"games": []})
        assert validate_document([{"id": "1", "title": "T", "description": "D"}]).startswith("0")
        assert "title" in validate_document(
            [{"id": "1", "title": 5, "description": "D", "link": "L"}]
        )


class TestFieldDecoding:
    """Tests for request field helpers."""

    def test_to_data_uri(self):
        assert to_data_uri(b"hi", "image/gif") == "data:image/gif;base64,aGk="

    def test_text_field(self):
        fields = {"title": "T", "id": 17, "image": None, "flag": True}

        assert text_field(fields, "title") == "T"
        assert text_field(fields, "id") == "17"
        assert text_field(fields, "image") is None
        assert text_field(fields, "flag") is None
        assert text_field(fields, "missing") is None

    @pytest.mark.asyncio
    async def test_resolve_image_url(self):
        assert await resolve_image("  https://cdn/x.png ", 100) == "https://cdn/x.png"
        assert await resolve_image("   ", 100) is None
        assert await resolve_image(None, 100) is None

    @pytest.mark.asyncio
    async def test_resolve_image_guesses_type_from_filename(self):
        """Test uploads without a useful content type fall back to the filename."""
        upload = UploadFile(
            file=BytesIO(b"GIF89a"),
            filename="anim.gif",
            headers=Headers({"content-type": "application/octet-stream"}),
        )

        assert await resolve_image(upload, 100) == "data:image/gif;base64,R0lGODlh"

    @pytest.mark.asyncio
    async def test_resolve_image_empty_upload(self):
        upload = UploadFile(file=BytesIO(b""), filename="empty.png")

        assert await resolve_image(upload, 100) is None

    @pytest.mark.asyncio
    async def test_resolve_image_too_large(self):
        upload = UploadFile(
            file=BytesIO(b"x" * 101),
            filename="big.png",
            headers=Headers({"content-type": "image/png"}),
        )

        with pytest.raises(ValidationFailed):
            await resolve_image(upload, 100)
