"""Admission errors. Each carries the reason tag and the event name sent back to the caller."""

from typing import Optional


class CallError(Exception):
    reason = "call-error"
    event = "call-error"

    def __init__(self, code: Optional[str] = None, detail: Optional[str] = None):
        self.code = code
        self.detail = detail or self.reason
        super().__init__(self.detail)

    def payload(self) -> dict:
        data = {"reason": self.reason}
        if self.code is not None:
            data["callCode"] = self.code
        if self.detail != self.reason:
            data["detail"] = self.detail
        return data


class NotFound(CallError):
    reason = "call-not-found"
    event = "call-not-found"


class Full(CallError):
    reason = "call-full"
    event = "call-full"


class Busy(CallError):
    reason = "call-busy"
    event = "call-busy"


class AlreadyMember(CallError):
    reason = "already-in-call"
    event = "already-in-call"


class Forbidden(CallError):
    reason = "not-creator"


class NoWaitingParticipant(CallError):
    reason = "no-waiting-participant"


class InvalidTarget(CallError):
    reason = "invalid-target"


class InvalidMessage(CallError):
    reason = "invalid-message"


class CodeSpaceExhausted(RuntimeError):
    """Raised when no free call code could be drawn."""
