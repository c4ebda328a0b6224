from typing import Any, NamedTuple

from pydantic import AliasChoices, BaseModel, Field


class Outbound(NamedTuple):
    """One frame to deliver: {"type": event, "data": data} sent to target."""
    target: str
    event: str
    data: dict


# Inbound "data" objects. callCode and code are both accepted.

class CallCodeMessage(BaseModel):
    code: str = Field(min_length=1, validation_alias=AliasChoices("callCode", "code"))


class ParticipantMessage(CallCodeMessage):
    participant_id: str = Field(min_length=1, validation_alias=AliasChoices("participantId", "participant_id"))


class SignalMessage(CallCodeMessage):
    # opaque; never inspected
    payload: Any = Field(default=None, validation_alias=AliasChoices("payload", "offer", "answer", "candidate"))
