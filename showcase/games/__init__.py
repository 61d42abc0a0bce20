"""Game entries and the synchronized collection holding them."""

from .collection import GameCollection
from .models import Game

__all__ = ["Game", "GameCollection"]
