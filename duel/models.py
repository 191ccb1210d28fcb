from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card, cards_to_payload, draw, new_shuffled_deck
from .evaluator import HandCategory


class GameMode(str, Enum):
    CLASSIC = "classic"
    TACTICAL = "tactical"
    RECYCLING = "recycling"


class GameState(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    ENDED = "ended"


class Audience(str, Enum):
    SENDER = "sender"
    ROOM = "room"
    OTHERS = "others"
    EVERYONE = "everyone"


class LobbyError(Exception):
    """Structural failure that is reported back to the acting connection."""

    def __init__(self, msg: str) -> None:
        super().__init__(msg)
        self.msg = msg


@dataclass(frozen=True)
class ModeRules:
    name: str
    starting_health: int
    full_redraw: bool = False
    tactical: bool = False
    cooldown: bool = False


MODE_RULES: Dict[GameMode, ModeRules] = {
    GameMode.CLASSIC: ModeRules(name="Classic", starting_health=200),
    GameMode.TACTICAL: ModeRules(name="Tactical", starting_health=300, full_redraw=True, tactical=True),
    GameMode.RECYCLING: ModeRules(name="Recycling", starting_health=300, full_redraw=True, cooldown=True),
}

ARMOR_GAIN: Dict[HandCategory, int] = {
    HandCategory.HIGH_CARD: 2,
    HandCategory.ONE_PAIR: 5,
    HandCategory.TWO_PAIR: 8,
    HandCategory.THREE_OF_A_KIND: 12,
    HandCategory.STRAIGHT: 15,
    HandCategory.FLUSH: 18,
    HandCategory.FULL_HOUSE: 22,
    HandCategory.FOUR_OF_A_KIND: 25,
    HandCategory.STRAIGHT_FLUSH: 30,
    HandCategory.ROYAL_FLUSH: 35,
}


@dataclass
class MatchConfig:
    hand_size: int = 8
    max_discards: int = 3
    max_cards_per_discard: int = 5
    discard_cooldown_turns: int = 5
    max_armor: int = 50
    start_delay_ms: int = 500
    damage_scale: str = "escalated"


@dataclass
class Player:
    id: str
    name: str
    health: int = 0
    max_health: int = 0
    hand: List[Card] = field(default_factory=list)
    deck: List[Card] = field(default_factory=list)
    discard_pile: List[Card] = field(default_factory=list)
    discards_used: int = 0
    max_discards: int = 3
    max_cards_per_discard: int = 5
    discard_cooldown: int = 0
    # Tactical only; None elsewhere.
    armor: Optional[int] = None
    prediction: Optional[HandCategory] = None

    def reset_for_match(self, rules: ModeRules, config: MatchConfig, rng: random.Random) -> None:
        self.health = rules.starting_health
        self.max_health = rules.starting_health
        self.deck = new_shuffled_deck(rng)
        self.discard_pile = []
        self.hand = draw(self.deck, config.hand_size)
        self.discards_used = 0
        self.max_discards = config.max_discards
        self.max_cards_per_discard = config.max_cards_per_discard
        self.discard_cooldown = 0
        self.armor = 0 if rules.tactical else None
        self.prediction = None

    def clear_match(self) -> None:
        self.hand = []
        self.deck = []
        self.discard_pile = []
        self.armor = None
        self.prediction = None

    @property
    def selected_cards(self) -> List[Card]:
        return [card for card in self.hand if card.selected]

    @property
    def marked_cards(self) -> List[Card]:
        return [card for card in self.hand if card.marked_for_discard]

    @property
    def card_count(self) -> int:
        return len(self.hand) + len(self.deck) + len(self.discard_pile)

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def identity_payload(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name}

    def summary(self, *, tactical: bool, include_hand: bool) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "id": self.id,
            "name": self.name,
            "health": self.health,
            "maxHealth": self.max_health,
            "handSize": len(self.hand),
            "deckSize": len(self.deck),
            "discardPileSize": len(self.discard_pile),
            "discardsUsed": self.discards_used,
            "maxDiscards": self.max_discards,
            "maxCardsPerDiscard": self.max_cards_per_discard,
            "discardCooldown": self.discard_cooldown,
        }
        if tactical:
            payload["armor"] = self.armor or 0
            payload["prediction"] = self.prediction.value if self.prediction else None
        if include_hand:
            payload["hand"] = cards_to_payload(self.hand)
        return payload


@dataclass
class Event:
    ev: str
    data: Dict[str, object] = field(default_factory=dict)
    audience: Audience = Audience.ROOM
    room_id: Optional[str] = None
    sender: Optional[str] = None
