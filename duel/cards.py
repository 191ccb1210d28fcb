from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

SUITS = ("hearts", "diamonds", "clubs", "spades")
RANKS = tuple(range(1, 14))  # 1 is the Ace, 11/12/13 are J/Q/K

DECK_SIZE = len(SUITS) * len(RANKS)


@dataclass
class Card:
    id: str
    suit: str
    rank: int
    # Only meaningful while the card sits in a hand.
    selected: bool = False
    marked_for_discard: bool = False

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    def clear_flags(self) -> None:
        self.selected = False
        self.marked_for_discard = False

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "suit": self.suit,
            "rank": self.rank,
            "selected": self.selected,
            "markedForDiscard": self.marked_for_discard,
        }


def new_shuffled_deck(rng: Optional[random.Random] = None) -> List[Card]:
    rng = rng or random.Random()
    deck = [Card(f"{suit}-{rank}-{uuid.uuid4().hex[:8]}", suit, rank) for suit in SUITS for rank in RANKS]
    rng.shuffle(deck)
    return deck


def ensure_drawable(
    deck: List[Card],
    discard_pile: List[Card],
    need: int,
    rng: Optional[random.Random] = None,
) -> bool:
    """Recycle the discard pile into the deck when fewer than ``need`` cards remain.

    Returns whether the deck can now satisfy the draw. A False result is not an
    error: callers draw what is available.
    """
    if len(deck) >= need:
        return True
    if discard_pile:
        rng = rng or random.Random()
        rng.shuffle(discard_pile)
        deck.extend(discard_pile)
        discard_pile.clear()
    return len(deck) >= need


def draw(deck: List[Card], count: int) -> List[Card]:
    cards = deck[:count]
    del deck[:count]
    for card in cards:
        card.clear_flags()
    return cards


def move_to_discard(discard_pile: List[Card], cards: Iterable[Card]) -> None:
    for card in cards:
        card.clear_flags()
        discard_pile.append(card)


def cards_to_payload(cards: Iterable[Card]) -> List[Dict[str, object]]:
    return [card.to_payload() for card in cards]
