from __future__ import annotations

import random
from typing import Iterable, List, Optional, Sequence, Tuple

from duel.cards import Card
from duel.match import Room
from duel.models import GameMode, MatchConfig, Player

CardSpec = Tuple[int, str]


def card(rank: int, suit: str = "hearts", card_id: Optional[str] = None) -> Card:
    return Card(card_id or f"{suit}-{rank}", suit, rank)


def cards(specs: Iterable[CardSpec]) -> List[Card]:
    return [card(rank, suit) for rank, suit in specs]


def create_room(
    mode: GameMode = GameMode.CLASSIC,
    *,
    seed: int = 42,
    config: Optional[MatchConfig] = None,
    start: bool = True,
) -> Room:
    """Room with two seated players ("p1", "p2"), dealt unless start=False."""
    room = Room("R-1", "Test room", mode, config=config, rng=random.Random(seed))
    room.add_player(Player(id="p1", name="Alice"))
    room.add_player(Player(id="p2", name="Bob"))
    if start:
        room.start_game()
    return room


def actor(room: Room) -> Player:
    return room.players[room.current_player_index]


def defender(room: Room) -> Player:
    return room.players[1 - room.current_player_index]


def rig_hand(player: Player, specs: Sequence[CardSpec], hand_size: int = 8) -> List[Card]:
    """Move the named cards into the player's hand without creating or losing any."""
    pool = player.hand + player.deck + player.discard_pile
    wanted: List[Card] = []
    for rank, suit in specs:
        match = next(c for c in pool if c.rank == rank and c.suit == suit and c not in wanted)
        wanted.append(match)
    wanted_ids = {c.id for c in wanted}
    rest = [c for c in pool if c.id not in wanted_ids]
    fill = hand_size - len(wanted)
    player.hand = wanted + rest[:fill]
    player.deck = rest[fill:]
    player.discard_pile = []
    for c in pool:
        c.clear_flags()
    return wanted


def select(room: Room, player: Player, chosen: Iterable[Card]) -> None:
    for c in chosen:
        room.select_card(player.id, c.id)


def play(room: Room, specs: Sequence[CardSpec]):
    """Rig the active player's hand, select the given cards and play them."""
    player = actor(room)
    chosen = rig_hand(player, specs)
    select(room, player, chosen)
    return room.play_hand(player.id)


def play_any_single(room: Room):
    player = actor(room)
    room.select_card(player.id, player.hand[0].id)
    return room.play_hand(player.id)
