from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from duel.lobby import Lobby
from duel.models import Audience, Event, LobbyError, MatchConfig

from .protocol import Action, ValidationError, describe_error, parse_action

LOGGER = logging.getLogger("duel_host")


@dataclass
class Outbox:
    queue: asyncio.Queue[str]
    writer: asyncio.Task


# DuelServer glues the lobby to WebSocket clients. Every network concern
# lives here; the Lobby and its rooms stay pure and return events to send.
# The lock covers applying an action and queueing its frames. Each connection
# has its own outbox drained by a writer task, so a slow reader only delays
# itself while every recipient still sees frames in the order they were applied.


class DuelServer:
    def __init__(self, config: Optional[MatchConfig] = None, lobby: Optional[Lobby] = None) -> None:
        self.lobby = lobby or Lobby(config)
        self.connections: Dict[str, ServerConnection] = {}
        self.outboxes: Dict[str, Outbox] = {}
        self.start_tasks: Dict[str, asyncio.Task] = {}
        self.lock = asyncio.Lock()

    async def start(self, host: str = "0.0.0.0", port: int = 4545) -> None:
        async with serve(self._handle_connection, host, port):
            LOGGER.info(
                "Duel server listening on %s:%s (damage scale %s)",
                host,
                port,
                self.lobby.config.damage_scale,
            )
            await asyncio.Future()

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        connection_id = uuid.uuid4().hex
        self.connections[connection_id] = websocket
        self._outbox(connection_id)
        LOGGER.info("Connection %s opened", connection_id)
        try:
            async for raw in websocket:
                await self._handle_message(connection_id, raw)
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._handle_disconnect(connection_id)

    async def _handle_message(self, connection_id: str, raw: str | bytes) -> None:
        try:
            action = parse_action(raw)
        except ValidationError as exc:
            detail = describe_error(exc)
            LOGGER.warning("Rejected message from %s: %s", connection_id, detail)
            self._send_error(connection_id, f"Malformed message: {detail}")
            return

        async with self.lock:
            try:
                events = self._dispatch(connection_id, action)
            except LobbyError as exc:
                LOGGER.info("Action %s from %s refused: %s", action.type, connection_id, exc.msg)
                self._send_error(connection_id, exc.msg)
                return
            self._deliver(events)

    def _dispatch(self, connection_id: str, action: Action) -> List[Event]:
        lobby = self.lobby
        if action.type == "setPlayerName":
            return lobby.set_player_name(connection_id, action.name)
        if action.type == "getRooms":
            return lobby.list_rooms(connection_id)
        if action.type == "createRoom":
            return lobby.create_room(connection_id, action.name, action.game_mode)
        if action.type == "joinRoom":
            events = lobby.join_room(connection_id, action.room_id)
            if lobby.ready_to_start(action.room_id):
                self._schedule_start(action.room_id)
            return events
        if action.type == "selectCard":
            return lobby.select_card(connection_id, action.room_id, action.card_id)
        if action.type == "markForDiscard":
            return lobby.mark_for_discard(connection_id, action.room_id, action.card_id)
        if action.type == "discardCards":
            return lobby.discard_cards(connection_id, action.room_id)
        if action.type == "playHand":
            return lobby.play_hand(connection_id, action.room_id)
        if action.type == "buildArmor":
            return lobby.build_armor(connection_id, action.room_id)
        if action.type == "makePrediction":
            return lobby.make_prediction(connection_id, action.room_id, action.category)
        if action.type == "requestRematch":
            return lobby.request_rematch(connection_id, action.room_id)
        if action.type == "acceptRematch":
            return lobby.accept_rematch(connection_id, action.room_id)
        if action.type == "declineRematch":
            return lobby.decline_rematch(connection_id, action.room_id)
        if action.type == "leaveRoom":
            events = lobby.leave_room(connection_id)
            self._cancel_stale_starts()
            return events
        raise ValueError(f"Unsupported action {action.type}")

    async def _handle_disconnect(self, connection_id: str) -> None:
        async with self.lock:
            self.connections.pop(connection_id, None)
            outbox = self.outboxes.pop(connection_id, None)
            if outbox:
                outbox.writer.cancel()
            events = self.lobby.disconnect(connection_id)
            self._cancel_stale_starts()
            self._deliver(events)
        LOGGER.info("Connection %s closed", connection_id)

    # Deferred game start ---------------------------------------------

    def _schedule_start(self, room_id: str) -> None:
        previous = self.start_tasks.pop(room_id, None)
        if previous:
            previous.cancel()
        LOGGER.info("Room %s full, starting in %sms", room_id, self.lobby.config.start_delay_ms)
        self.start_tasks[room_id] = asyncio.create_task(self._deferred_start(room_id))

    async def _deferred_start(self, room_id: str) -> None:
        try:
            await asyncio.sleep(self.lobby.config.start_delay_ms / 1000)
            async with self.lock:
                # The lobby re-checks that the room still exists with two players.
                events = self.lobby.start_game(room_id)
                self._deliver(events)
        finally:
            if self.start_tasks.get(room_id) is asyncio.current_task():
                self.start_tasks.pop(room_id, None)

    def _cancel_stale_starts(self) -> None:
        for room_id, task in list(self.start_tasks.items()):
            if not self.lobby.ready_to_start(room_id):
                task.cancel()
                self.start_tasks.pop(room_id, None)
                LOGGER.info("Cancelled pending start for room %s", room_id)

    # Delivery --------------------------------------------------------

    def _targets(self, event: Event) -> List[str]:
        if event.audience == Audience.SENDER:
            return [event.sender] if event.sender else []
        if event.audience == Audience.EVERYONE:
            return list(self.connections)
        members = self.lobby.room_members(event.room_id) if event.room_id else []
        if event.audience == Audience.OTHERS:
            return [member for member in members if member != event.sender]
        return members

    def _deliver(self, events: Iterable[Event]) -> None:
        for event in events:
            targets = self._targets(event)
            if not targets:
                continue
            message = self._envelope(event.ev, event.data)
            for target in targets:
                self._post(target, message)

    def _send_error(self, connection_id: str, msg: str) -> None:
        self._post(connection_id, self._envelope("error", {"message": msg}))

    def _post(self, connection_id: str, message: str) -> None:
        outbox = self._outbox(connection_id)
        if outbox is not None:
            outbox.queue.put_nowait(message)

    def _outbox(self, connection_id: str) -> Optional[Outbox]:
        outbox = self.outboxes.get(connection_id)
        if outbox is None:
            websocket = self.connections.get(connection_id)
            if websocket is None:
                return None
            queue: asyncio.Queue[str] = asyncio.Queue()
            writer = asyncio.create_task(self._write_loop(websocket, queue))
            outbox = self.outboxes[connection_id] = Outbox(queue, writer)
        return outbox

    async def _write_loop(self, websocket: ServerConnection, queue: asyncio.Queue[str]) -> None:
        while True:
            message = await queue.get()
            try:
                await websocket.send(message)
            except websockets.ConnectionClosed:
                pass
            finally:
                queue.task_done()

    async def flush(self, *connection_ids: str) -> None:
        """Wait until the given connections (default: all) have sent every queued frame."""
        wanted = connection_ids or tuple(self.outboxes)
        outboxes = [self.outboxes[cid] for cid in wanted if cid in self.outboxes]
        await asyncio.gather(*(outbox.queue.join() for outbox in outboxes))

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body: Dict[str, object] = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)
