import random

import pytest

from duel.cards import DECK_SIZE
from duel.evaluator import HandCategory
from duel.match import Room
from duel.models import Audience, GameMode, GameState, LobbyError, MatchConfig, Player

from .helpers import actor, create_room, defender, play, play_any_single, rig_hand, select


def assert_conserved(room: Room) -> None:
    for player in room.players:
        assert player.card_count == DECK_SIZE
        ids = [c.id for c in player.hand + player.deck + player.discard_pile]
        assert len(set(ids)) == DECK_SIZE


def test_start_game_deals_fresh_decks_and_health():
    room = create_room(GameMode.CLASSIC)
    assert room.state == GameState.PLAYING
    assert room.turn_counter == 1
    for player in room.players:
        assert player.health == player.max_health == 200
        assert len(player.hand) == 8
        assert len(player.deck) == 44
        assert player.discard_pile == []
        assert player.discards_used == 0
        assert player.armor is None
    assert_conserved(room)
    hand_ids = {c.id for c in room.players[0].hand}
    assert not hand_ids & {c.id for c in room.players[1].hand + room.players[1].deck}


def test_start_game_requires_two_players():
    room = create_room(start=False)
    room.remove_player("p2")
    with pytest.raises(RuntimeError, match="exactly 2 players"):
        room.start_game()


def test_first_player_is_chosen_at_random():
    firsts = {create_room(seed=seed).current_player_index for seed in range(20)}
    assert firsts == {0, 1}


def test_game_started_event_reveals_both_hands():
    room = create_room(start=False)
    events = room.start_game()
    assert [event.ev for event in events] == ["gameStarted"]
    snapshot = events[0].data["room"]
    assert snapshot["gameState"] == "playing"
    assert all(len(entry["hand"]) == 8 for entry in snapshot["players"])
    assert snapshot["damageScale"] == "escalated"
    assert len(snapshot["damageTable"]) == 10


def test_room_rejects_third_player_and_duplicates():
    room = create_room(start=False)
    with pytest.raises(LobbyError, match="Room is full"):
        room.add_player(Player(id="p3", name="Carol"))
    room.remove_player("p2")
    with pytest.raises(LobbyError, match="already in this room"):
        room.add_player(Player(id="p1", name="Alice"))


def test_select_card_toggles_and_broadcasts():
    room = create_room()
    player = actor(room)
    card = player.hand[0]
    events = room.select_card(player.id, card.id)
    assert card.selected
    assert player.selected_cards == [card]
    assert events[0].ev == "cardSelected"
    assert events[0].data == {"playerIndex": room.current_player_index, "cardId": card.id, "selected": True}
    assert events[0].audience == Audience.ROOM

    room.select_card(player.id, card.id)
    assert player.selected_cards == []


def test_out_of_turn_and_unknown_card_actions_are_dropped_silently():
    room = create_room()
    idle = defender(room)
    card = idle.hand[0]
    assert room.select_card(idle.id, card.id) == []
    assert room.mark_for_discard(idle.id, card.id) == []
    assert room.play_hand(idle.id) == []
    assert room.discard_cards(idle.id) == []
    assert not card.selected

    assert room.select_card(actor(room).id, "no-such-card") == []
    assert room.select_card("stranger", card.id) == []


def test_actions_before_start_are_dropped_silently():
    room = create_room(start=False)
    assert room.select_card("p1", "anything") == []
    assert room.play_hand("p1") == []


def test_play_hand_without_selection_is_dropped():
    room = create_room()
    assert room.play_hand(actor(room).id) == []
    assert room.turn_counter == 1


def test_invalid_hand_is_reported_to_sender_and_keeps_turn():
    room = create_room()
    player = actor(room)
    chosen = rig_hand(player, [(3, "hearts"), (9, "clubs")])
    select(room, player, chosen)
    index = room.current_player_index

    events = room.play_hand(player.id)

    assert [event.ev for event in events] == ["invalidHand"]
    assert events[0].audience == Audience.SENDER
    assert events[0].sender == player.id
    assert events[0].data["message"] == "Two cards must be a pair (same rank)"
    assert room.current_player_index == index
    assert room.turn_counter == 1
    assert len(player.hand) == 8


def test_play_hand_damages_opponent_and_passes_turn():
    room = create_room()
    attacker, target = actor(room), defender(room)
    index = room.current_player_index

    events = play(room, [(10, "hearts"), (10, "spades")])

    assert target.health == 200 - (5 + 20)
    assert room.current_player_index == 1 - index
    assert room.turn_counter == 2
    event = events[0]
    assert event.ev == "handPlayed"
    assert event.data["handResult"]["category"] == "One Pair"
    assert event.data["handResult"]["damage"] == 25
    assert event.data["newCurrentPlayer"] == 1 - index
    assert "hand" in event.data["players"][index]
    assert "hand" not in event.data["players"][1 - index]
    assert room.last_played_hand.damage == 25
    assert attacker.selected_cards == []


def test_classic_mode_replaces_only_played_cards():
    room = create_room(GameMode.CLASSIC)
    player = actor(room)
    chosen = rig_hand(player, [(4, "hearts"), (4, "clubs")])
    kept = [c.id for c in player.hand if c not in chosen]

    select(room, player, chosen)
    room.play_hand(player.id)

    assert len(player.hand) == 8
    assert [c.id for c in player.hand[:6]] == kept
    assert {c.id for c in chosen} <= {c.id for c in player.discard_pile}
    assert_conserved(room)


def test_game_ends_when_health_reaches_exactly_zero_without_advancing_turn():
    room = create_room()
    target = defender(room)
    target.health = 15
    index = room.current_player_index

    events = play(room, [(1, "diamonds")])

    assert target.health == 0
    assert room.state == GameState.ENDED
    assert room.current_player_index == index
    assert room.turn_counter == 1
    assert [event.ev for event in events] == ["gameEnded"]
    assert events[0].data["winner"]["id"] == room.players[index].id
    assert events[0].data["handResult"]["damage"] == 15
    assert room.play_hand(room.players[index].id) == []


def test_health_is_floored_at_zero():
    room = create_room()
    target = defender(room)
    target.health = 3
    play(room, [(13, "spades")])
    assert target.health == 0
    assert room.state == GameState.ENDED


def test_discard_replaces_selected_cards_and_counts_budget():
    room = create_room()
    player = actor(room)
    chosen = player.hand[:3]
    select(room, player, chosen)

    events = room.discard_cards(player.id)

    assert events[0].ev == "gameStateUpdate"
    assert len(player.hand) == 8
    assert not {c.id for c in chosen} & {c.id for c in player.hand}
    assert player.discards_used == 1
    assert room.turn_counter == 1
    summaries = events[0].data["players"]
    assert "hand" in summaries[room.current_player_index]
    assert_conserved(room)


def test_discard_prefers_cards_marked_for_discard():
    room = create_room()
    player = actor(room)
    marked = player.hand[0]
    selected = player.hand[1]
    events = room.mark_for_discard(player.id, marked.id)
    assert events[0].data == {"playerIndex": room.current_player_index, "cardId": marked.id, "marked": True}
    room.select_card(player.id, selected.id)

    room.discard_cards(player.id)

    ids = {c.id for c in player.hand}
    assert marked.id not in ids
    assert selected.id in ids


def test_discard_limits_are_enforced_silently():
    room = create_room()
    player = actor(room)
    assert room.discard_cards(player.id) == []

    select(room, player, player.hand[:6])
    assert room.discard_cards(player.id) == []
    for c in player.hand:
        c.clear_flags()

    player.discards_used = player.max_discards
    room.select_card(player.id, player.hand[0].id)
    assert room.discard_cards(player.id) == []


def test_discard_without_enough_cards_raises_lobby_error():
    room = create_room()
    player = actor(room)
    # Simulate a drained pool; the hand is all that is left.
    player.deck.clear()
    player.discard_pile.clear()
    select(room, player, player.hand[:2])

    with pytest.raises(LobbyError, match="Not enough cards"):
        room.discard_cards(player.id)
    assert len(player.hand) == 8
    assert player.discards_used == 0


def test_conservation_over_long_match():
    for mode in GameMode:
        room = create_room(mode, seed=99)
        rng = random.Random(1)
        for _ in range(300):
            if room.state != GameState.PLAYING:
                break
            player = actor(room)
            if rng.random() < 0.3:
                select(room, player, player.hand[: rng.randint(1, 3)])
                room.discard_cards(player.id)
                for c in player.hand:
                    c.clear_flags()
            play_any_single(room)
            assert_conserved(room)
        assert room.turn_counter > 10


def test_snapshot_and_listing():
    room = create_room(GameMode.TACTICAL)
    listing = room.listing()
    assert listing == {"id": "R-1", "name": "Test room", "players": 2, "maxPlayers": 2, "gameMode": "tactical"}
    snapshot = room.snapshot()
    assert snapshot["modeName"] == "Tactical"
    assert snapshot["players"][0]["armor"] == 0
    assert snapshot["players"][0]["prediction"] is None


def test_classic_damage_scale_is_configurable():
    room = create_room(config=MatchConfig(damage_scale="classic"))
    target = defender(room)
    play(room, [(2, "hearts"), (4, "hearts"), (6, "hearts"), (8, "hearts"), (10, "hearts")])
    assert target.health == 200 - (25 + 30)
    assert room.last_played_hand.category == HandCategory.FLUSH
