"""Game showcase server: a live bulletin board of games backed by GitHub."""

__version__ = "0.1.0"
