"""Inbound action schemas.

Every client frame is a JSON object whose ``type`` names the action. The
union below is closed: unknown types and missing fields fail validation
before anything reaches the lobby.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from duel.evaluator import PLAYABLE_CATEGORIES, HandCategory
from duel.models import GameMode

__all__ = ["Action", "ValidationError", "describe_error", "parse_action"]


class _Action(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class _RoomAction(_Action):
    room_id: str = Field(alias="roomId", min_length=1)


class SetPlayerName(_Action):
    type: Literal["setPlayerName"]
    name: str = Field(min_length=1, max_length=40)


class GetRooms(_Action):
    type: Literal["getRooms"]


class CreateRoom(_Action):
    type: Literal["createRoom"]
    name: str = Field(min_length=1, max_length=60)
    game_mode: GameMode = Field(default=GameMode.CLASSIC, alias="gameMode")


class JoinRoom(_RoomAction):
    type: Literal["joinRoom"]


class SelectCard(_RoomAction):
    type: Literal["selectCard"]
    card_id: str = Field(alias="cardId", min_length=1)


class MarkForDiscard(_RoomAction):
    type: Literal["markForDiscard"]
    card_id: str = Field(alias="cardId", min_length=1)


class DiscardCards(_RoomAction):
    type: Literal["discardCards"]


class PlayHand(_RoomAction):
    type: Literal["playHand"]


class BuildArmor(_RoomAction):
    type: Literal["buildArmor"]


class MakePrediction(_RoomAction):
    type: Literal["makePrediction"]
    category: HandCategory

    @field_validator("category")
    @classmethod
    def _playable(cls, value: HandCategory) -> HandCategory:
        if value not in PLAYABLE_CATEGORIES:
            raise ValueError("prediction must name a hand category")
        return value


class RequestRematch(_RoomAction):
    type: Literal["requestRematch"]


class AcceptRematch(_RoomAction):
    type: Literal["acceptRematch"]


class DeclineRematch(_RoomAction):
    type: Literal["declineRematch"]


class LeaveRoom(_Action):
    type: Literal["leaveRoom"]


Action = Annotated[
    Union[
        SetPlayerName,
        GetRooms,
        CreateRoom,
        JoinRoom,
        SelectCard,
        MarkForDiscard,
        DiscardCards,
        PlayHand,
        BuildArmor,
        MakePrediction,
        RequestRematch,
        AcceptRematch,
        DeclineRematch,
        LeaveRoom,
    ],
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(raw: Union[str, bytes]) -> Action:
    """Decode and validate one client frame; raises ValidationError."""
    return _ADAPTER.validate_json(raw)


def describe_error(exc: ValidationError) -> str:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid message")
    return f"{location}: {message}" if location else message
