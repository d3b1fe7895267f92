"""
JSON frames exchanged over a hub WebSocket.

    client -> server   {"type": "invocation", "id": "1", "target": "loadPlan", "arguments": [3]}
    server -> client   {"type": "completion", "id": "1", "result": [...]}
                       {"type": "completion", "id": "1", "error": {"type": ..., "message": ..., "status": ...}}
                       {"type": "event", "target": "addedPlan", "arguments": [{...}]}

An invocation whose id is null expects no completion.
"""

import json
from enum import Enum
from typing import Any, Literal

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, ValidationError

from .exceptions import InvalidMessage

RECEIVE_ERROR_EVENT = "ReceiveError"
SERVER_ERROR_TYPE = "ServerError"


class MessageType(str, Enum):
    INVOCATION = "invocation"
    COMPLETION = "completion"
    EVENT = "event"


class Invocation(BaseModel):
    type: Literal["invocation"] = "invocation"
    id: str | None = None
    target: str = Field(..., min_length=1)
    arguments: list[Any] = Field(default_factory=list)

    @property
    def expects_completion(self) -> bool:
        return self.id is not None


class ErrorInfo(BaseModel):
    type: str
    message: str
    status: int


def parse_invocation(raw: str | bytes) -> Invocation:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise InvalidMessage("Frame is not valid JSON") from e
    if not isinstance(data, dict):
        raise InvalidMessage("Frame must be a JSON object")
    if data.get("type", MessageType.INVOCATION.value) != MessageType.INVOCATION.value:
        raise InvalidMessage(f"Unexpected message type '{data.get('type')}'")
    try:
        return Invocation.model_validate(data)
    except ValidationError as e:
        raise InvalidMessage("Frame is not a valid invocation") from e


def peek_invocation_id(raw: str | bytes) -> str | None:
    """Best-effort id of a frame that failed to parse, so the error can still be correlated."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("id"), str):
        return data["id"]
    return None


def completion_message(invocation_id: str | None, result: Any = None) -> dict[str, Any]:
    return {
        "type": MessageType.COMPLETION.value,
        "id": invocation_id,
        "result": jsonable_encoder(result),
    }


def error_completion_message(
    invocation_id: str | None, error: ErrorInfo
) -> dict[str, Any]:
    return {
        "type": MessageType.COMPLETION.value,
        "id": invocation_id,
        "error": error.model_dump(),
    }


def event_message(target: str, *arguments: Any) -> dict[str, Any]:
    return {
        "type": MessageType.EVENT.value,
        "target": target,
        "arguments": jsonable_encoder(list(arguments)),
    }
