"""FastAPI application exposing the board over HTTP and WebSocket."""

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from ..broadcast import ChangeBroadcaster, Subscriber
from ..config import Config
from ..errors import ShowcaseError, Unauthorized, ValidationFailed
from ..games import GameCollection
from ..store import GitHubDocumentStore
from .forms import read_fields, resolve_image, text_field

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"


def _bearer_token(header: str | None) -> str:
    """Extract the token from an Authorization header.

    A bare token without the Bearer scheme is accepted as well.
    """
    if not header:
        return ""
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return header.strip()


def create_app(config: Config, collection: GameCollection | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        config: Application configuration.
        collection: Optional prebuilt collection. When omitted, one is
            built from the GitHub settings with a fresh broadcaster.

    Returns:
        Configured FastAPI application. The collection is loaded from the
        store when the app starts up.
    """
    if collection is None:
        collection = GameCollection(
            GitHubDocumentStore.from_config(config.github),
            ChangeBroadcaster(send_timeout=config.server.send_timeout_seconds),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await collection.load()
        try:
            yield
        finally:
            await collection.close()

    app = FastAPI(
        title=config.server.title,
        description="Live bulletin board of showcased games",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Store references for route handlers
    app.state.config = config
    app.state.collection = collection

    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
    max_image_bytes = config.images.max_upload_bytes

    # ==================== Error handling ====================

    @app.exception_handler(ShowcaseError)
    async def showcase_error_handler(request: Request, exc: ShowcaseError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    def require_admin(request: Request) -> None:
        """Reject the request unless it carries the admin token."""
        token = _bearer_token(request.headers.get("authorization"))
        expected = config.auth.admin_token
        if not expected or not secrets.compare_digest(
            token.encode("utf-8"), expected.encode("utf-8")
        ):
            raise Unauthorized()

    def require_id(fields: dict[str, Any]) -> str:
        game_id = text_field(fields, "id")
        if game_id is None or not game_id.strip():
            raise ValidationFailed("Missing id")
        return game_id.strip()

    # ==================== Read routes ====================

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        """Live board page."""
        return templates.TemplateResponse(
            request,
            "index.html",
            {"title": config.server.title, "games": collection.snapshot()},
        )

    @app.get("/games")
    async def list_games() -> list[dict[str, Any]]:
        """All games, newest first."""
        return [game.to_dict() for game in collection.snapshot()]

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"ok": True, "games": len(collection)}

    # ==================== Admin routes ====================
    # Mutations are shielded so a client disconnect never interrupts a
    # persist-or-revert sequence halfway.

    @app.post("/add", status_code=201, dependencies=[Depends(require_admin)])
    async def add_game(request: Request) -> dict[str, Any]:
        fields = await read_fields(request)
        image = await resolve_image(fields.get("image"), max_image_bytes)
        game = await asyncio.shield(
            collection.add(
                title=text_field(fields, "title"),
                description=text_field(fields, "description"),
                link=text_field(fields, "link"),
                image=image,
            )
        )
        return game.to_dict()

    @app.post("/edit", dependencies=[Depends(require_admin)])
    async def edit_game(request: Request) -> dict[str, Any]:
        fields = await read_fields(request)
        game_id = require_id(fields)
        image = await resolve_image(fields.get("image"), max_image_bytes)
        game = await asyncio.shield(
            collection.edit(
                game_id,
                title=text_field(fields, "title"),
                description=text_field(fields, "description"),
                link=text_field(fields, "link"),
                image=image,
            )
        )
        return game.to_dict()

    @app.post("/delete", dependencies=[Depends(require_admin)])
    async def delete_game(request: Request) -> dict[str, Any]:
        fields = await read_fields(request)
        game_id = require_id(fields)
        deleted_id = await asyncio.shield(collection.delete(game_id))
        return {"ok": True, "id": deleted_id}

    # ==================== Live updates ====================

    @app.websocket("/ws")
    async def live_updates(websocket: WebSocket):
        """Push an init snapshot, then every change, to one viewer."""
        await websocket.accept()
        subscriber = Subscriber(websocket)
        if not await collection.attach(subscriber):
            await websocket.close(code=1011)
            return

        try:
            while True:
                # Viewers are receive-only; incoming frames are ignored
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            if collection.broadcaster is not None:
                collection.broadcaster.unsubscribe(subscriber)

    return app
