from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .evaluator import HandCategory
from .match import Room
from .models import Audience, Event, GameMode, LobbyError, MatchConfig, Player

LOGGER = logging.getLogger("duel.lobby")


@dataclass
class Session:
    id: str
    name: str
    room_id: Optional[str] = None


class SessionDirectory:
    """Connection id -> display name and current room."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def register(self, connection_id: str, name: str) -> Session:
        session = self._sessions.get(connection_id)
        if session is None:
            session = Session(id=connection_id, name=name)
            self._sessions[connection_id] = session
        else:
            session.name = name
        return session

    def get(self, connection_id: str) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def require(self, connection_id: str) -> Session:
        session = self._sessions.get(connection_id)
        if session is None:
            raise LobbyError("Player not found")
        return session

    def remove(self, connection_id: str) -> Optional[Session]:
        return self._sessions.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions


class RoomRegistry:
    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def add(self, room: Room) -> Room:
        self._rooms[room.id] = room
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def require(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise LobbyError("Room not found")
        return room

    def destroy(self, room_id: str) -> Optional[Room]:
        return self._rooms.pop(room_id, None)

    def open_rooms(self) -> List[Room]:
        return [room for room in self._rooms.values() if not room.is_full]

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms


class Lobby:
    """Owns sessions and rooms and routes each connection's actions to its room.

    Every method returns the ordered events to deliver. Structural problems
    raise LobbyError; stale or out-of-turn actions return an empty list.
    """

    def __init__(
        self,
        config: Optional[MatchConfig] = None,
        rng: Optional[random.Random] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.config = config or MatchConfig()
        self.rng = rng or random.Random()
        self.id_factory = id_factory
        self.sessions = SessionDirectory()
        self.rooms = RoomRegistry()

    # Sessions --------------------------------------------------------

    def set_player_name(self, connection_id: str, name: str) -> List[Event]:
        session = self.sessions.register(connection_id, name)
        room = self.rooms.get(session.room_id) if session.room_id else None
        if room is not None:
            # A seated player carries the session name.
            idx = room.index_of(connection_id)
            if idx is not None:
                room.players[idx].name = session.name
        LOGGER.info("Player %s (%s) set name", name, connection_id)
        return [_to_sender(connection_id, "playerSet", {"id": session.id, "name": session.name})]

    def list_rooms(self, connection_id: str) -> List[Event]:
        rooms = [room.listing() for room in self.rooms.open_rooms()]
        return [_to_sender(connection_id, "roomsList", {"rooms": rooms})]

    # Room membership -------------------------------------------------

    def create_room(self, connection_id: str, name: str, game_mode: GameMode = GameMode.CLASSIC) -> List[Event]:
        session = self.sessions.require(connection_id)
        if session.room_id is not None:
            raise LobbyError("You are already in a room")

        room = Room(self.id_factory(), name, game_mode, config=self.config, rng=self.rng)
        room.add_player(Player(id=session.id, name=session.name))
        self.rooms.add(room)
        session.room_id = room.id
        LOGGER.info("Room %s (%s) created by %s - mode %s", name, room.id, session.name, game_mode.value)
        return [
            Event("roomCreated", {"roomId": room.id, "room": room.snapshot()}, Audience.SENDER, room.id, connection_id),
            _rooms_updated(),
        ]

    def join_room(self, connection_id: str, room_id: str) -> List[Event]:
        room = self.rooms.require(room_id)
        session = self.sessions.require(connection_id)
        if session.room_id is not None and session.room_id != room_id:
            raise LobbyError("You are already in a room")

        player = Player(id=session.id, name=session.name)
        room.add_player(player)
        session.room_id = room.id
        LOGGER.info("Player %s joined room %s (%s/2)", session.name, room.name, len(room.players))
        return [
            Event(
                "playerJoined",
                {"player": player.identity_payload(), "room": room.snapshot()},
                Audience.ROOM,
                room.id,
                connection_id,
            ),
            _rooms_updated(),
        ]

    def leave_room(self, connection_id: str) -> List[Event]:
        session = self.sessions.get(connection_id)
        if session is None or session.room_id is None:
            return []
        room_id = session.room_id
        session.room_id = None
        return self._vacate(connection_id, room_id)

    def disconnect(self, connection_id: str) -> List[Event]:
        session = self.sessions.remove(connection_id)
        if session is None or session.room_id is None:
            return []
        return self._vacate(connection_id, session.room_id)

    def _vacate(self, connection_id: str, room_id: str) -> List[Event]:
        room = self.rooms.get(room_id)
        if room is None:
            return []
        room.remove_player(connection_id)
        events: List[Event] = []
        if not room.players:
            self.rooms.destroy(room_id)
            LOGGER.info("Room %s closed", room_id)
        else:
            events.append(Event("playerLeft", {"playerId": connection_id}, Audience.ROOM, room_id, connection_id))
        events.append(_rooms_updated())
        return events

    # Match start -----------------------------------------------------

    def ready_to_start(self, room_id: str) -> bool:
        room = self.rooms.get(room_id)
        return room is not None and room.can_start()

    def start_game(self, room_id: str) -> List[Event]:
        # Deferred starts land here; the room may have emptied meanwhile.
        room = self.rooms.get(room_id)
        if room is None or not room.can_start():
            return []
        return room.start_game()

    # In-room actions -------------------------------------------------

    def select_card(self, connection_id: str, room_id: str, card_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.select_card(connection_id, card_id) if room else []

    def mark_for_discard(self, connection_id: str, room_id: str, card_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.mark_for_discard(connection_id, card_id) if room else []

    def discard_cards(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.discard_cards(connection_id) if room else []

    def play_hand(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.play_hand(connection_id) if room else []

    def build_armor(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.build_armor(connection_id) if room else []

    def make_prediction(self, connection_id: str, room_id: str, category: HandCategory) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.make_prediction(connection_id, category) if room else []

    def request_rematch(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.request_rematch(connection_id) if room else []

    def accept_rematch(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.accept_rematch(connection_id) if room else []

    def decline_rematch(self, connection_id: str, room_id: str) -> List[Event]:
        room = self._member_room(connection_id, room_id)
        return room.decline_rematch(connection_id) if room else []

    def _member_room(self, connection_id: str, room_id: str) -> Optional[Room]:
        if connection_id not in self.sessions:
            return None
        room = self.rooms.get(room_id)
        if room is None or room.index_of(connection_id) is None:
            return None
        return room

    def room_members(self, room_id: str) -> List[str]:
        room = self.rooms.get(room_id)
        return [player.id for player in room.players] if room else []


def _to_sender(connection_id: str, ev: str, data: Dict[str, object]) -> Event:
    return Event(ev, data, Audience.SENDER, None, connection_id)


def _rooms_updated() -> Event:
    return Event("roomsUpdated", {}, Audience.EVERYONE)
