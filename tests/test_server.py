"""Tests for the HTTP and WebSocket server."""

import base64

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from showcase.broadcast import ChangeBroadcaster
from showcase.config import AuthConfig, Config, ImagesConfig, ServerConfig
from showcase.games import GameCollection
from showcase.server import create_app
from showcase.store import DocumentSnapshot, GitHubDocumentStore, PersistError

TOKEN = "zeta_secret_token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def config():
    """Create a test configuration."""
    return Config(
        server=ServerConfig(title="Test Board"),
        auth=AuthConfig(admin_token=TOKEN),
        images=ImagesConfig(max_upload_bytes=1024),
    )


@pytest.fixture
def mock_store():
    """Create a mock document store that accepts every write."""
    store = MagicMock(spec=GitHubDocumentStore)
    store.load = AsyncMock(return_value=None)
    store.save = AsyncMock(return_value="sha-new")
    store.close = AsyncMock()
    return store


@pytest.fixture
def collection(mock_store):
    return GameCollection(mock_store, ChangeBroadcaster())


@pytest.fixture
def app(config, collection):
    """Create the FastAPI app."""
    return create_app(config, collection=collection)


@pytest.fixture
def client(app):
    """Create a test client."""
    return TestClient(app)


def add(client: TestClient, title: str = "Pong", **extra) -> dict:
    body = {
        "title": title,
        "description": f"{title} description",
        "link": f"https://example.com/{title.lower()}",
        **extra,
    }
    response = client.post("/add", json=body, headers=AUTH)
    assert response.status_code == 201, response.text
    return response.json()


class TestReadRoutes:
    """Tests for public routes."""

    def test_index_page(self, client):
        """Test the live board page renders."""
        add(client, "Pong")

        response = client.get("/")

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "Test Board" in response.text
        assert "Pong" in response.text

    def test_games_empty(self, client):
        response = client.get("/games")

        assert response.status_code == 200
        assert response.json() == []

    def test_games_newest_first(self, client):
        """Test GET /games lists the latest addition first."""
        first = add(client, "A")
        second = add(client, "B")

        games = client.get("/games").json()

        assert [g["id"] for g in games] == [second["id"], first["id"]]

    def test_games_idempotent(self, client):
        add(client, "A")

        assert client.get("/games").json() == client.get("/games").json()

    def test_health(self, client):
        """Test health reports the game count."""
        add(client, "A")

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "games": 1}


class TestAuthorization:
    """Tests for the admin token check."""

    @pytest.mark.parametrize("path", ["/add", "/edit", "/delete"])
    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "Bearer"}],
    )
    def test_rejects_missing_or_bad_token(self, client, mock_store, path, headers):
        """Test mutations without the right token change nothing."""
        response = client.post(
            path,
            json={"id": "x", "title": "T", "description": "D", "link": "L"},
            headers=headers,
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        mock_store.save.assert_not_called()
        assert client.get("/games").json() == []

    def test_accepts_bare_token(self, client):
        """Test the raw token without a scheme is accepted."""
        response = client.post(
            "/add",
            json={"title": "T", "description": "D", "link": "L"},
            headers={"Authorization": TOKEN},
        )

        assert response.status_code == 201

    def test_empty_configured_token_rejects_all(self, mock_store):
        """Test an unset admin token never authorizes."""
        app = create_app(Config(), collection=GameCollection(mock_store))
        client = TestClient(app)

        response = client.post(
            "/add",
            json={"title": "T", "description": "D", "link": "L"},
            headers={"Authorization": "Bearer "},
        )

        assert response.status_code == 401


class TestAddRoute:
    """Tests for POST /add."""

    def test_add_json(self, client, mock_store):
        """Test adding a game from a JSON body."""
        game = add(client, "Pong", image="https://example.com/pong.png")

        assert game["title"] == "Pong"
        assert game["image"] == "https://example.com/pong.png"
        assert game["createdAt"]
        assert "updatedAt" not in game
        mock_store.save.assert_awaited_once()

    def test_add_multipart_with_image(self, client):
        """Test an uploaded image is stored as a data URI."""
        response = client.post(
            "/add",
            data={"title": "Pong", "description": "Classic", "link": "https://p"},
            files={"image": ("pong.png", PNG_BYTES, "image/png")},
            headers=AUTH,
        )

        assert response.status_code == 201
        image = response.json()["image"]
        assert image == "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()

    def test_add_form_with_image_url(self, client):
        """Test a URL-encoded form with an image URL."""
        response = client.post(
            "/add",
            data={
                "title": "Pong",
                "description": "Classic",
                "link": "https://p",
                "image": "https://cdn/p.png",
            },
            headers=AUTH,
        )

        assert response.status_code == 201
        assert response.json()["image"] == "https://cdn/p.png"

    def test_add_rejects_non_image_upload(self, client, mock_store):
        response = client.post(
            "/add",
            data={"title": "Pong", "description": "Classic", "link": "https://p"},
            files={"image": ("notes.txt", b"hello", "text/plain")},
            headers=AUTH,
        )

        assert response.status_code == 400
        mock_store.save.assert_not_called()

    def test_add_rejects_oversized_upload(self, client):
        response = client.post(
            "/add",
            data={"title": "Pong", "description": "Classic", "link": "https://p"},
            files={"image": ("big.png", b"\x00" * 2048, "image/png")},
            headers=AUTH,
        )

        assert response.status_code == 400
        assert "exceeds" in response.json()["error"]

    def test_add_missing_field(self, client, mock_store):
        """Test a missing required field is a 400."""
        response = client.post(
            "/add", json={"title": "Pong", "description": "Classic"}, headers=AUTH
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Missing required field: link"
        mock_store.save.assert_not_called()

    def test_add_invalid_json(self, client):
        response = client.post(
            "/add",
            content=b"{oops",
            headers={**AUTH, "content-type": "application/json"},
        )

        assert response.status_code == 400

    def test_add_persist_failure(self, client, mock_store):
        """Test a failed persist returns 500 and leaves no game behind."""
        mock_store.save.side_effect = PersistError("Save failed", attempts=3)

        response = client.post(
            "/add",
            json={"title": "Pong", "description": "Classic", "link": "https://p"},
            headers=AUTH,
        )

        assert response.status_code == 500
        assert "Failed to save games" in response.json()["error"]
        assert client.get("/games").json() == []


class TestEditRoute:
    """Tests for POST /edit."""

    def test_edit_partial(self, client):
        """Test blank fields keep their values."""
        game = add(client, "Pong")

        response = client.post(
            "/edit",
            json={"id": game["id"], "title": "", "description": "New"},
            headers=AUTH,
        )

        assert response.status_code == 200
        updated = response.json()
        assert updated["title"] == "Pong"
        assert updated["description"] == "New"
        assert updated["updatedAt"]

    def test_edit_missing_id(self, client):
        response = client.post("/edit", json={"title": "X"}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"] == "Missing id"

    def test_edit_unknown_id(self, client):
        response = client.post("/edit", json={"id": "nope"}, headers=AUTH)

        assert response.status_code == 404

    def test_edit_persist_failure_restores(self, client, mock_store):
        game = add(client, "Pong")
        mock_store.save.side_effect = PersistError("Save failed", attempts=3)

        response = client.post(
            "/edit", json={"id": game["id"], "title": "Changed"}, headers=AUTH
        )

        assert response.status_code == 500
        assert client.get("/games").json() == [game]


class TestDeleteRoute:
    """Tests for POST /delete."""

    def test_delete_then_not_found(self, client):
        game = add(client, "Pong")

        response = client.post("/delete", json={"id": game["id"]}, headers=AUTH)
        assert response.status_code == 200
        assert response.json() == {"ok": True, "id": game["id"]}

        again = client.post("/delete", json={"id": game["id"]}, headers=AUTH)
        assert again.status_code == 404

    def test_delete_form_body(self, client):
        game = add(client, "Pong")

        response = client.post("/delete", data={"id": game["id"]}, headers=AUTH)

        assert response.status_code == 200

    def test_delete_missing_id(self, client):
        response = client.post("/delete", json={}, headers=AUTH)

        assert response.status_code == 400

    def test_delete_persist_failure_restores(self, client, mock_store):
        game = add(client, "Pong")
        mock_store.save.side_effect = PersistError("Save failed", attempts=3)

        response = client.post("/delete", json={"id": game["id"]}, headers=AUTH)

        assert response.status_code == 500
        assert client.get("/games").json() == [game]


class TestLiveUpdates:
    """Tests for the WebSocket channel."""

    def test_connect_receives_init_snapshot(self, app, mock_store):
        """Test a new viewer gets one init with the full current list."""
        with TestClient(app) as client:
            first = add(client, "A")
            second = add(client, "B")

            with client.websocket_connect("/ws") as websocket:
                message = websocket.receive_json()

        assert message["type"] == "init"
        assert message["payload"] == [second, first]
        assert isinstance(message["ts"], int)
        mock_store.load.assert_awaited_once()
        mock_store.close.assert_awaited_once()

    def test_changes_are_pushed(self, app):
        """Test add, edit and delete reach a connected viewer in order."""
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as websocket:
                assert websocket.receive_json()["payload"] == []

                game = add(client, "A")
                client.post(
                    "/edit", json={"id": game["id"], "title": "A2"}, headers=AUTH
                )
                client.post("/delete", json={"id": game["id"]}, headers=AUTH)

                added = websocket.receive_json()
                edited = websocket.receive_json()
                deleted = websocket.receive_json()

        assert added["type"] == "add"
        assert added["payload"] == game
        assert edited["type"] == "edit"
        assert edited["payload"]["title"] == "A2"
        assert deleted["type"] == "delete"
        assert deleted["payload"] == {"id": game["id"]}

    def test_disconnect_unsubscribes(self, app, collection):
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()
                assert collection.broadcaster.subscriber_count == 1

            add(client, "A")

        assert collection.broadcaster.subscriber_count == 0


class TestStartup:
    """Tests for the startup load."""

    def test_malformed_document_starts_empty(self, app, mock_store):
        """Test the server still starts when stored entries cannot be read."""
        mock_store.load.return_value = DocumentSnapshot(
            entries=[
                {"id": "1", "title": "A", "description": "a", "link": "l", "createdAt": "soon"}
            ],
        )

        with TestClient(app) as client:
            response = client.get("/health")

        assert response.json() == {"ok": True, "games": 0}
