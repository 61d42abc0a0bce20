"""HTTP and WebSocket surface of the showcase server.

Serves the games list, admin mutations guarded by a bearer token, a live
board page, and a WebSocket channel pushing changes to viewers.
"""

from .app import create_app

__all__ = ["create_app"]
