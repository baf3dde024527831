from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    user_id: str = Field(serialization_alias="userId")


class TranscriptEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["transcript"] = "transcript"
    text: str
    timestamp: int
    is_final: bool = Field(alias="isFinal")


class TranscriptionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_final: bool = Field(default=False, alias="isFinal")


class TranscriptionOut(BaseModel):
    delivered: int
    display: str | None = None


class SessionWebhook(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["session_request", "stop_request"]
    session_id: str = Field(alias="sessionId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    timestamp: str | int | None = None


class SessionEndOut(BaseModel):
    closed: int
