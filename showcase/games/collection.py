"""In-memory game list kept in step with the remote games document.

Every mutation follows the same sequence under one lock: change the local
list, write the whole list to the store, and either broadcast the change or
put the list back exactly as it was.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Any

from ..broadcast import ChangeBroadcaster, ChangeType, Subscriber
from ..errors import NotFound, PersistFailed, ValidationFailed
from ..store import DocumentStoreError, GitHubDocumentStore
from .models import Game, new_game_id, utc_now

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "link")


def _clean(value: str | None) -> str | None:
    """Strip a submitted value; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class GameCollection:
    """Ordered games list with persist-or-revert mutations.

    Games are held in insertion order. The store's version tag and the list
    itself belong to this instance; nothing is module-global.
    """

    def __init__(
        self,
        store: GitHubDocumentStore,
        broadcaster: ChangeBroadcaster | None = None,
    ):
        """Initialize the collection.

        Args:
            store: Remote document store used for persistence.
            broadcaster: Optional broadcaster notified after each
                successful mutation.
        """
        self.store = store
        self.broadcaster = broadcaster
        self._games: list[Game] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._games)

    async def load(self) -> int:
        """Populate the list from the store.

        Best effort: a missing document or a failed load leaves the
        collection empty.

        Returns:
            Number of games loaded.
        """
        async with self._lock:
            try:
                snapshot = await self.store.load()
                games = self._unique_games(snapshot.entries if snapshot else [])
            except DocumentStoreError as e:
                logger.error(f"Initial load failed, starting with no games: {e}")
                games = []
            except Exception:
                logger.exception("Unreadable games document, starting with no games")
                games = []

            self._games = games
            logger.info(f"Collection ready with {len(games)} games")
            return len(games)

    @staticmethod
    def _unique_games(entries: list[dict[str, Any]]) -> list[Game]:
        games: list[Game] = []
        seen: set[str] = set()
        for data in entries:
            game = Game.from_dict(data)
            if game.id in seen:
                logger.warning(f"Skipping duplicate game id {game.id}")
                continue
            seen.add(game.id)
            games.append(game)
        return games

    def snapshot(self) -> list[Game]:
        """Return games newest first without changing anything."""
        return list(reversed(self._games))

    def get(self, game_id: Any) -> Game | None:
        index = self._index_of(game_id)
        return self._games[index] if index is not None else None

    def _index_of(self, game_id: Any) -> int | None:
        key = str(game_id)
        for index, game in enumerate(self._games):
            if game.id == key:
                return index
        return None

    async def _persist(self, message: str) -> None:
        """Write the current list, raising PersistFailed on any store error.

        Callers undo their change on any exception from here, not only
        PersistFailed.
        """
        try:
            await self.store.save([g.to_dict() for g in self._games], message)
        except DocumentStoreError as e:
            logger.error(f"Persist failed for '{message}': {e}")
            raise PersistFailed(f"Failed to save games: {e}") from e
        except Exception as e:
            logger.exception(f"Unexpected error persisting '{message}'")
            raise PersistFailed(f"Failed to save games: {e}") from e

    async def _notify(self, change_type: ChangeType, payload: Any) -> None:
        if self.broadcaster is not None:
            await self.broadcaster.publish(change_type, payload)

    async def add(
        self,
        title: str | None,
        description: str | None,
        link: str | None,
        image: str | None = None,
    ) -> Game:
        """Create a game and persist it.

        Raises:
            ValidationFailed: A required field is missing or blank.
            PersistFailed: The store write failed; the game was removed.
        """
        values = {
            "title": _clean(title),
            "description": _clean(description),
            "link": _clean(link),
        }
        for name in REQUIRED_FIELDS:
            if values[name] is None:
                raise ValidationFailed(f"Missing required field: {name}")

        game = Game(
            id=new_game_id(),
            image=_clean(image),
            created_at=utc_now(),
            **values,
        )

        async with self._lock:
            self._games.append(game)
            try:
                await self._persist(f"Add game: {game.title}")
            except BaseException:
                self._games.remove(game)
                raise

            logger.info(f"Added game {game.id} ({game.title})")
            await self._notify(ChangeType.ADD, game.to_dict())
            return game

    async def edit(
        self,
        game_id: Any,
        title: str | None = None,
        description: str | None = None,
        link: str | None = None,
        image: str | None = None,
    ) -> Game:
        """Update the provided fields of an existing game.

        Blank or missing values leave the field unchanged, so a field
        cannot be cleared through an edit. updatedAt is set even when
        nothing else changes.

        Raises:
            NotFound: No game has this id.
            PersistFailed: The store write failed; the prior game was restored.
        """
        changes = {
            name: cleaned
            for name, value in (
                ("title", title),
                ("description", description),
                ("link", link),
                ("image", image),
            )
            if (cleaned := _clean(value)) is not None
        }

        async with self._lock:
            index = self._index_of(game_id)
            if index is None:
                raise NotFound(f"Game not found: {game_id}")

            previous = self._games[index]
            updated = replace(previous, updated_at=utc_now(), **changes)
            self._games[index] = updated
            try:
                await self._persist(f"Edit game: {updated.title}")
            except BaseException:
                self._games[index] = previous
                raise

            logger.info(f"Edited game {updated.id} ({', '.join(changes) or 'no fields'})")
            await self._notify(ChangeType.EDIT, updated.to_dict())
            return updated

    async def delete(self, game_id: Any) -> str:
        """Remove a game.

        Returns:
            The id of the removed game.

        Raises:
            NotFound: No game has this id.
            PersistFailed: The store write failed; the game was re-inserted
                at its original position.
        """
        async with self._lock:
            index = self._index_of(game_id)
            if index is None:
                raise NotFound(f"Game not found: {game_id}")

            removed = self._games.pop(index)
            try:
                await self._persist(f"Delete game: {removed.title}")
            except BaseException:
                self._games.insert(index, removed)
                raise

            logger.info(f"Deleted game {removed.id} ({removed.title})")
            await self._notify(ChangeType.DELETE, {"id": removed.id})
            return removed.id

    async def attach(self, subscriber: Subscriber) -> bool:
        """Register a viewer with the broadcaster, starting from a snapshot.

        Runs under the mutation lock so the snapshot and the later event
        stream neither overlap nor leave a gap.

        Returns:
            True if the subscriber is now registered.
        """
        if self.broadcaster is None:
            return False
        async with self._lock:
            games = [g.to_dict() for g in self.snapshot()]
            return await self.broadcaster.subscribe(subscriber, games)

    async def close(self) -> None:
        await self.store.close()
