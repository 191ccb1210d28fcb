from __future__ import annotations

import logging
import math
import random
from typing import Dict, List, Optional

from .cards import DECK_SIZE, Card, cards_to_payload, draw, ensure_drawable, move_to_discard
from .evaluator import DAMAGE_SCALES, HandCategory, HandResult, damage_table_payload, evaluate, validate
from .models import (
    ARMOR_GAIN,
    MODE_RULES,
    Audience,
    Event,
    GameMode,
    GameState,
    LobbyError,
    MatchConfig,
    ModeRules,
    Player,
)

LOGGER = logging.getLogger("duel.match")

MAX_PLAYERS = 2

# Room holds one match worth of state in memory. Nothing here touches the
# network: every public action returns the ordered events to deliver. An
# action that arrives out of turn or in the wrong state returns no events.


class Room:
    """Two-player card duel: waiting -> playing -> ended (-> playing on rematch)."""

    def __init__(
        self,
        room_id: str,
        name: str,
        game_mode: GameMode = GameMode.CLASSIC,
        config: Optional[MatchConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.id = room_id
        self.name = name
        self.game_mode = game_mode
        self.config = config or MatchConfig()
        self.rng = rng or random.Random()
        self.damage_table = DAMAGE_SCALES[self.config.damage_scale]
        self.players: List[Player] = []
        self.state = GameState.WAITING
        self.current_player_index = 0
        self.turn_counter = 1
        self.last_played_hand: Optional[HandResult] = None
        self.rematch_requested_by: Optional[int] = None

    @property
    def rules(self) -> ModeRules:
        return MODE_RULES[self.game_mode]

    @property
    def is_full(self) -> bool:
        return len(self.players) >= MAX_PLAYERS

    # Seat management -------------------------------------------------

    def add_player(self, player: Player) -> None:
        if self.index_of(player.id) is not None:
            raise LobbyError("You are already in this room")
        if self.is_full:
            raise LobbyError("Room is full")
        self.players.append(player)

    def remove_player(self, player_id: str) -> Optional[Player]:
        idx = self.index_of(player_id)
        if idx is None:
            return None
        player = self.players.pop(idx)
        player.clear_match()
        if self.players:
            # The survivor waits for a new opponent from the room list.
            self.state = GameState.WAITING
            self.current_player_index = 0
            self.rematch_requested_by = None
        return player

    def index_of(self, player_id: str) -> Optional[int]:
        for idx, player in enumerate(self.players):
            if player.id == player_id:
                return idx
        return None

    def _active_index(self, player_id: str) -> Optional[int]:
        # Only the player whose turn it is may act, and only mid-match.
        if self.state != GameState.PLAYING:
            return None
        idx = self.index_of(player_id)
        if idx is None or idx != self.current_player_index:
            return None
        return idx

    # Match lifecycle -------------------------------------------------

    def can_start(self) -> bool:
        return self.state == GameState.WAITING and len(self.players) == MAX_PLAYERS

    def start_game(self) -> List[Event]:
        if len(self.players) != MAX_PLAYERS:
            raise RuntimeError("Need exactly 2 players to start a game")
        self._deal_match()
        LOGGER.info(
            "Room %s started (%s); %s goes first",
            self.id,
            self.game_mode.value,
            self.players[self.current_player_index].name,
        )
        return [self._event("gameStarted", {"room": self.snapshot()})]

    def _deal_match(self) -> None:
        for player in self.players:
            player.reset_for_match(self.rules, self.config, self.rng)
        self.state = GameState.PLAYING
        self.current_player_index = self.rng.randint(0, 1)
        self.turn_counter = 1
        self.last_played_hand = None
        self.rematch_requested_by = None

    # Card flags ------------------------------------------------------

    def select_card(self, player_id: str, card_id: str) -> List[Event]:
        idx = self._active_index(player_id)
        if idx is None:
            return []
        card = self.players[idx].find_card(card_id)
        if card is None:
            return []
        card.selected = not card.selected
        return [
            self._event(
                "cardSelected",
                {"playerIndex": idx, "cardId": card_id, "selected": card.selected},
                sender=player_id,
            )
        ]

    def mark_for_discard(self, player_id: str, card_id: str) -> List[Event]:
        idx = self._active_index(player_id)
        if idx is None:
            return []
        card = self.players[idx].find_card(card_id)
        if card is None:
            return []
        card.marked_for_discard = not card.marked_for_discard
        return [
            self._event(
                "cardMarkedForDiscard",
                {"playerIndex": idx, "cardId": card_id, "marked": card.marked_for_discard},
                sender=player_id,
            )
        ]

    # Actions ---------------------------------------------------------

    def discard_cards(self, player_id: str) -> List[Event]:
        idx = self._active_index(player_id)
        if idx is None:
            return []
        player = self.players[idx]
        flagged = player.marked_cards or player.selected_cards
        if not flagged or len(flagged) > player.max_cards_per_discard:
            return []
        if player.discards_used >= player.max_discards:
            return []
        if self.rules.cooldown and player.discard_cooldown > 0:
            return []

        needed = len(flagged)
        if not ensure_drawable(player.deck, player.discard_pile, needed, self.rng):
            raise LobbyError("Not enough cards available to complete discard")

        flagged_ids = {card.id for card in flagged}
        player.hand = [card for card in player.hand if card.id not in flagged_ids]
        move_to_discard(player.discard_pile, flagged)
        player.hand.extend(draw(player.deck, needed))
        player.discards_used += 1

        if self.rules.cooldown and player.discards_used >= player.max_discards:
            player.discard_cooldown = self.config.discard_cooldown_turns
        LOGGER.debug(
            "Room %s: %s discarded %s cards (%s/%s used)",
            self.id,
            player.name,
            needed,
            player.discards_used,
            player.max_discards,
        )
        return [self._event("gameStateUpdate", {"players": self.player_summaries(idx)}, sender=player_id)]

    def play_hand(self, player_id: str) -> List[Event]:
        idx = self._active_index(player_id)
        if idx is None:
            return []
        player = self.players[idx]
        enemy = self.players[1 - idx]
        played = player.selected_cards
        if not played:
            return []

        validation = validate(played)
        if not validation.valid:
            return [self._invalid_hand(player_id, validation.error)]

        result = evaluate(played, self.damage_table)
        damage = self._apply_modifiers(result, enemy)
        enemy.health = max(0, enemy.health - damage)
        self.last_played_hand = result.with_damage(damage)

        self._spend_cards(player, played, full_redraw=self.rules.full_redraw)
        LOGGER.debug(
            "Room %s: %s played %s for %s (raw %s); %s at %s HP",
            self.id,
            player.name,
            result.category.value,
            damage,
            result.damage,
            enemy.name,
            enemy.health,
        )

        if enemy.health <= 0:
            self.state = GameState.ENDED
            LOGGER.info("Room %s ended; winner %s", self.id, player.name)
            return [
                self._event(
                    "gameEnded",
                    {
                        "winner": player.summary(tactical=self.rules.tactical, include_hand=False),
                        "winnerIndex": idx,
                        "handResult": self.last_played_hand.to_payload(),
                    },
                    sender=player_id,
                )
            ]

        self._advance_turn()
        return [
            self._event(
                "handPlayed",
                {
                    "playerIndex": idx,
                    "handResult": self.last_played_hand.to_payload(),
                    "newCurrentPlayer": self.current_player_index,
                    "turn": self.turn_counter,
                    "players": self.player_summaries(idx),
                },
                sender=player_id,
            )
        ]

    def build_armor(self, player_id: str) -> List[Event]:
        if not self.rules.tactical:
            return []
        idx = self._active_index(player_id)
        if idx is None:
            return []
        player = self.players[idx]
        played = player.selected_cards
        if not played:
            return []

        validation = validate(played)
        if not validation.valid:
            return [self._invalid_hand(player_id, validation.error)]

        result = evaluate(played, self.damage_table)
        before = player.armor or 0
        player.armor = min(self.config.max_armor, before + ARMOR_GAIN[result.category])
        gained = player.armor - before

        self._spend_cards(player, played, full_redraw=True)
        self._advance_turn()
        LOGGER.debug("Room %s: %s built %s armor (%s total)", self.id, player.name, gained, player.armor)
        return [
            self._event(
                "armorBuilt",
                {
                    "playerIndex": idx,
                    "armorGained": gained,
                    "handResult": result.to_payload(),
                    "newCurrentPlayer": self.current_player_index,
                    "turn": self.turn_counter,
                    "players": self.player_summaries(idx),
                },
                sender=player_id,
            )
        ]

    def make_prediction(self, player_id: str, category: HandCategory) -> List[Event]:
        if not self.rules.tactical or self.state != GameState.PLAYING:
            return []
        idx = self.index_of(player_id)
        # Predictions are made about the opponent's upcoming play.
        if idx is None or idx == self.current_player_index:
            return []
        player = self.players[idx]
        if player.prediction is not None or category is HandCategory.INVALID:
            return []
        player.prediction = category
        LOGGER.debug("Room %s: %s predicted %s", self.id, player.name, category.value)
        return [self._event("predictionMade", {"playerIndex": idx, "prediction": category.value}, sender=player_id)]

    # Rematch ---------------------------------------------------------

    def request_rematch(self, player_id: str) -> List[Event]:
        idx = self.index_of(player_id)
        if idx is None or self.state != GameState.ENDED:
            return []
        self.rematch_requested_by = idx
        return [
            self._event(
                "rematchRequested",
                {"playerName": self.players[idx].name},
                audience=Audience.OTHERS,
                sender=player_id,
            )
        ]

    def accept_rematch(self, player_id: str) -> List[Event]:
        idx = self.index_of(player_id)
        if idx is None or self.state != GameState.ENDED or len(self.players) != MAX_PLAYERS:
            return []
        if self.rematch_requested_by is None or self.rematch_requested_by == idx:
            return []
        self._deal_match()
        LOGGER.info("Room %s rematch started", self.id)
        return [self._event("rematchAccepted", {"room": self.snapshot()}, sender=player_id)]

    def decline_rematch(self, player_id: str) -> List[Event]:
        idx = self.index_of(player_id)
        if idx is None or self.state != GameState.ENDED:
            return []
        self.rematch_requested_by = None
        return [self._event("rematchDeclined", {}, audience=Audience.OTHERS, sender=player_id)]

    # Internals -------------------------------------------------------

    def _apply_modifiers(self, result: HandResult, defender: Player) -> int:
        damage = result.damage
        if not self.rules.tactical:
            return damage

        if defender.prediction is not None:
            if defender.prediction == result.category:
                damage = math.floor(damage * 0.25)
            else:
                damage = math.floor(damage * 1.25)
            defender.prediction = None

        armor = defender.armor or 0
        if armor > 0:
            absorbed = min(armor, damage)
            defender.armor = armor - absorbed
            damage -= absorbed
        return damage

    def _spend_cards(self, player: Player, played: List[Card], *, full_redraw: bool) -> None:
        played_ids = {card.id for card in played}
        player.hand = [card for card in player.hand if card.id not in played_ids]
        move_to_discard(player.discard_pile, played)

        if full_redraw:
            move_to_discard(player.discard_pile, player.hand)
            player.hand = []
            need = self.config.hand_size
        else:
            need = len(played)

        if not ensure_drawable(player.deck, player.discard_pile, need, self.rng):
            LOGGER.warning("Room %s: %s short of cards, drawing %s", self.id, player.name, len(player.deck))
        player.hand.extend(draw(player.deck, need))
        for card in player.hand:
            card.clear_flags()
        assert player.card_count == DECK_SIZE

    def _advance_turn(self) -> None:
        self.current_player_index = 1 - self.current_player_index
        self.turn_counter += 1
        if not self.rules.cooldown:
            return
        for player in self.players:
            if player.discard_cooldown > 0:
                player.discard_cooldown -= 1
                if player.discard_cooldown == 0:
                    player.discards_used = 0

    def _invalid_hand(self, player_id: str, error: Optional[str]) -> Event:
        return self._event("invalidHand", {"message": error}, audience=Audience.SENDER, sender=player_id)

    def _event(
        self,
        ev: str,
        data: Dict[str, object],
        *,
        audience: Audience = Audience.ROOM,
        sender: Optional[str] = None,
    ) -> Event:
        return Event(ev=ev, data=data, audience=audience, room_id=self.id, sender=sender)

    # Public/Snapshot helpers -----------------------------------------

    def player_summaries(self, reveal_index: Optional[int] = None) -> List[Dict[str, object]]:
        return [
            player.summary(tactical=self.rules.tactical, include_hand=idx == reveal_index)
            for idx, player in enumerate(self.players)
        ]

    def listing(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "players": len(self.players),
            "maxPlayers": MAX_PLAYERS,
            "gameMode": self.game_mode.value,
        }

    def snapshot(self) -> Dict[str, object]:
        # Trusted-client model: both hands are included.
        players = []
        for player in self.players:
            entry = player.summary(tactical=self.rules.tactical, include_hand=True)
            entry["selectedCards"] = cards_to_payload(player.selected_cards)
            players.append(entry)
        return {
            "id": self.id,
            "name": self.name,
            "gameMode": self.game_mode.value,
            "modeName": self.rules.name,
            "players": players,
            "gameState": self.state.value,
            "currentPlayer": self.current_player_index,
            "turn": self.turn_counter,
            "lastPlayedHand": self.last_played_hand.to_payload() if self.last_played_hand else None,
            "damageScale": self.config.damage_scale,
            "damageTable": damage_table_payload(self.damage_table),
        }
