"""Card duel engine: decks, hand evaluation and the two-player match state machine."""

from .cards import Card, DECK_SIZE, RANKS, SUITS, draw, ensure_drawable, move_to_discard, new_shuffled_deck
from .evaluator import DAMAGE_SCALES, HandCategory, HandResult, Validation, evaluate, validate
from .lobby import Lobby, RoomRegistry, Session, SessionDirectory
from .match import Room
from .models import Audience, Event, GameMode, GameState, LobbyError, MatchConfig, Player

__all__ = [
    "Card",
    "DECK_SIZE",
    "RANKS",
    "SUITS",
    "draw",
    "ensure_drawable",
    "move_to_discard",
    "new_shuffled_deck",
    "DAMAGE_SCALES",
    "HandCategory",
    "HandResult",
    "Validation",
    "evaluate",
    "validate",
    "Lobby",
    "RoomRegistry",
    "Session",
    "SessionDirectory",
    "Room",
    "Audience",
    "Event",
    "GameMode",
    "GameState",
    "LobbyError",
    "MatchConfig",
    "Player",
]
