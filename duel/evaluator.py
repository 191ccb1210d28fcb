from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .cards import Card


class HandCategory(str, Enum):
    ROYAL_FLUSH = "Royal Flush"
    STRAIGHT_FLUSH = "Straight Flush"
    FOUR_OF_A_KIND = "Four of a Kind"
    FULL_HOUSE = "Full House"
    FLUSH = "Flush"
    STRAIGHT = "Straight"
    THREE_OF_A_KIND = "Three of a Kind"
    TWO_PAIR = "Two Pair"
    ONE_PAIR = "One Pair"
    HIGH_CARD = "High Card"
    INVALID = "Invalid Hand"


PLAYABLE_CATEGORIES = [category for category in HandCategory if category is not HandCategory.INVALID]

DESCRIPTIONS: Dict[HandCategory, str] = {
    HandCategory.ROYAL_FLUSH: "A, K, Q, J, 10 of same suit",
    HandCategory.STRAIGHT_FLUSH: "5 consecutive cards of same suit",
    HandCategory.FOUR_OF_A_KIND: "4 cards of same rank",
    HandCategory.FULL_HOUSE: "3 of a kind + pair",
    HandCategory.FLUSH: "5 cards of same suit",
    HandCategory.STRAIGHT: "5 consecutive cards",
    HandCategory.THREE_OF_A_KIND: "3 cards of same rank",
    HandCategory.TWO_PAIR: "2 pairs of different ranks",
    HandCategory.ONE_PAIR: "2 cards of same rank",
    HandCategory.HIGH_CARD: "Highest card",
}

# Base damage per category. Both published scales share the ordering; a
# server runs with exactly one of them.
CLASSIC_DAMAGE: Dict[HandCategory, int] = {
    HandCategory.ROYAL_FLUSH: 50,
    HandCategory.STRAIGHT_FLUSH: 40,
    HandCategory.FOUR_OF_A_KIND: 35,
    HandCategory.FULL_HOUSE: 30,
    HandCategory.FLUSH: 25,
    HandCategory.STRAIGHT: 20,
    HandCategory.THREE_OF_A_KIND: 15,
    HandCategory.TWO_PAIR: 10,
    HandCategory.ONE_PAIR: 5,
    HandCategory.HIGH_CARD: 1,
}

ESCALATED_DAMAGE: Dict[HandCategory, int] = {
    HandCategory.ROYAL_FLUSH: 150,
    HandCategory.STRAIGHT_FLUSH: 80,
    HandCategory.FOUR_OF_A_KIND: 60,
    HandCategory.FULL_HOUSE: 45,
    HandCategory.FLUSH: 30,
    HandCategory.STRAIGHT: 25,
    HandCategory.THREE_OF_A_KIND: 20,
    HandCategory.TWO_PAIR: 10,
    HandCategory.ONE_PAIR: 5,
    HandCategory.HIGH_CARD: 1,
}

DAMAGE_SCALES: Dict[str, Dict[HandCategory, int]] = {
    "classic": CLASSIC_DAMAGE,
    "escalated": ESCALATED_DAMAGE,
}

LOW_STRAIGHT = [1, 2, 3, 4, 5]
BROADWAY_STRAIGHT = [1, 10, 11, 12, 13]


@dataclass(frozen=True)
class Validation:
    valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class HandResult:
    category: HandCategory
    damage: int
    description: str
    base_damage: int = 0
    face_value: int = 0

    def with_damage(self, damage: int) -> "HandResult":
        return HandResult(self.category, damage, self.description, self.base_damage, self.face_value)

    def to_payload(self) -> Dict[str, object]:
        return {
            "category": self.category.value,
            "damage": self.damage,
            "description": self.description,
            "baseDamage": self.base_damage,
            "faceValue": self.face_value,
        }


@dataclass(frozen=True)
class _Shape:
    counts: List[int]
    is_flush: bool
    is_straight: bool
    is_broadway: bool


def _shape(cards: Sequence[Card]) -> _Shape:
    ranks = sorted(card.rank for card in cards)
    counts = sorted(Counter(ranks).values(), reverse=True)
    is_flush = len(cards) == 5 and len({card.suit for card in cards}) == 1

    is_straight = False
    is_broadway = False
    if len(cards) == 5 and len(set(ranks)) == 5:
        # The Ace is low only in A-2-3-4-5 and high only in 10-J-Q-K-A.
        is_broadway = ranks == BROADWAY_STRAIGHT
        is_straight = ranks == LOW_STRAIGHT or is_broadway or ranks[4] - ranks[0] == 4
    return _Shape(counts=counts, is_flush=is_flush, is_straight=is_straight, is_broadway=is_broadway)


def validate(cards: Sequence[Card]) -> Validation:
    count = len(cards)
    if count == 0:
        return Validation(False, "No cards selected")

    shape = _shape(cards)
    counts = shape.counts
    if count == 1:
        return Validation(True)
    if count == 2:
        if counts[0] != 2:
            return Validation(False, "Two cards must be a pair (same rank)")
        return Validation(True)
    if count == 3:
        if counts[0] != 3:
            return Validation(False, "Three cards must be three of a kind (same rank)")
        return Validation(True)
    if count == 4:
        if counts[0] == 4 or counts == [2, 2]:
            return Validation(True)
        return Validation(False, "Four cards must be either four of a kind or two pair")
    if count == 5:
        if shape.is_straight or shape.is_flush or counts == [3, 2]:
            return Validation(True)
        return Validation(False, "5 cards must form: Straight, Flush, Full House, Straight Flush, or Royal Flush")
    return Validation(False, f"Invalid number of cards: {count}. Play 1, 2, 3, 4, or 5 cards only.")


def face_value(card: Card) -> int:
    return 14 if card.rank == 1 else card.rank


def classify(cards: Sequence[Card]) -> HandCategory:
    """Category of an already validated selection, highest precedence first."""
    shape = _shape(cards)
    counts = shape.counts
    if shape.is_flush and shape.is_broadway:
        return HandCategory.ROYAL_FLUSH
    if shape.is_flush and shape.is_straight:
        return HandCategory.STRAIGHT_FLUSH
    if counts[0] == 4:
        return HandCategory.FOUR_OF_A_KIND
    if counts[:2] == [3, 2]:
        return HandCategory.FULL_HOUSE
    if shape.is_flush:
        return HandCategory.FLUSH
    if shape.is_straight:
        return HandCategory.STRAIGHT
    if counts[0] == 3:
        return HandCategory.THREE_OF_A_KIND
    if counts[:2] == [2, 2]:
        return HandCategory.TWO_PAIR
    if counts[0] == 2:
        return HandCategory.ONE_PAIR
    return HandCategory.HIGH_CARD


def evaluate(cards: Sequence[Card], damage_table: Optional[Dict[HandCategory, int]] = None) -> HandResult:
    damage_table = damage_table or ESCALATED_DAMAGE
    validation = validate(cards)
    if not validation.valid:
        return HandResult(HandCategory.INVALID, 0, validation.error or "Invalid combination")

    category = classify(cards)
    base = damage_table[category]
    face = sum(face_value(card) for card in cards)
    return HandResult(
        category=category,
        damage=base + face,
        description=f"{DESCRIPTIONS[category]} (Base: {base} + Face: {face})",
        base_damage=base,
        face_value=face,
    )


def damage_table_payload(damage_table: Dict[HandCategory, int]) -> List[Dict[str, object]]:
    return [
        {"category": category.value, "damage": damage, "description": DESCRIPTIONS[category]}
        for category, damage in damage_table.items()
    ]
