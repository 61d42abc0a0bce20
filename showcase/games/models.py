"""Game entries as kept in memory and written to the games document."""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_game_id() -> str:
    return uuid.uuid4().hex


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


@dataclass
class Game:
    """A single showcased game."""

    id: str
    title: str
    description: str
    link: str
    image: str | None = None  # data URI or external URL
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON form used in the document and on the wire.

        Optional fields without a value are left out, so a game that was
        never edited has no updatedAt key.
        """
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "link": self.link,
        }
        if self.image:
            data["image"] = self.image
        if self.created_at:
            data["createdAt"] = self.created_at.isoformat()
        if self.updated_at:
            data["updatedAt"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Game":
        """Create from dictionary.

        Numeric ids written by older versions of the board are kept as
        their string form.
        """
        return cls(
            id=str(data["id"]),
            title=data["title"],
            description=data["description"],
            link=data["link"],
            image=data.get("image") or None,
            created_at=_parse_timestamp(data.get("createdAt")),
            updated_at=_parse_timestamp(data.get("updatedAt")),
        )
