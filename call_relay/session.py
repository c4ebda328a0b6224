"""
session.py — admission and membership state machine for a single call.

A CallSession is only ever mutated while its lock is held, through
CallTable.checkout(). None of the methods here take the lock themselves.

States (gated admission):
  WAITING  creator alone, nobody pending
  PENDING  creator alone, one joiner awaiting approval
  ACTIVE   two members
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .errors import (
    AlreadyMember,
    Busy,
    Forbidden,
    Full,
    InvalidTarget,
    NoWaitingParticipant,
)

MAX_MEMBERS = 2


class AdmissionPolicy(str, Enum):
    OPEN = "open"
    GATED = "gated"


class CreatorLeavePolicy(str, Enum):
    DELETE = "delete"
    TRANSFER = "transfer"


class CallStatus(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"


class JoinOutcome(str, Enum):
    JOINED = "joined"
    PENDING = "pending"


@dataclass
class Departure:
    """What happened when an endpoint left (or was dropped from) a call."""
    endpoint_id: str
    was_member: bool = False
    was_pending: bool = False
    ended: bool = False
    new_creator: Optional[str] = None
    # endpoints still attached to the call after the departure
    remaining: List[str] = field(default_factory=list)
    # joiner that was waiting when the call ended under it
    dropped_pending: Optional[str] = None

    @property
    def noop(self) -> bool:
        return not (self.was_member or self.was_pending)


@dataclass
class CallSession:
    code: str
    session_id: str
    creator_id: str
    created_at: float
    last_activity_at: float
    admission: AdmissionPolicy = AdmissionPolicy.GATED
    creator_leaves: CreatorLeavePolicy = CreatorLeavePolicy.TRANSFER
    members: List[str] = field(default_factory=list)
    pending_joiner: Optional[str] = None
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def status(self) -> CallStatus:
        return CallStatus.ACTIVE if len(self.members) >= MAX_MEMBERS else CallStatus.WAITING

    @property
    def is_full(self) -> bool:
        return len(self.members) >= MAX_MEMBERS

    def is_member(self, endpoint_id: str) -> bool:
        return endpoint_id in self.members

    def is_participant(self, endpoint_id: str) -> bool:
        return endpoint_id in self.members or endpoint_id == self.pending_joiner

    def participants(self) -> List[str]:
        out = list(self.members)
        if self.pending_joiner is not None:
            out.append(self.pending_joiner)
        return out

    def others(self, endpoint_id: str) -> List[str]:
        return [m for m in self.members if m != endpoint_id]

    def touch(self, now: float):
        self.last_activity_at = now

    # ------------------ admission ------------------

    def join(self, endpoint_id: str, now: float) -> JoinOutcome:
        if self.is_participant(endpoint_id):
            raise AlreadyMember(self.code)
        if self.is_full:
            raise Full(self.code)
        if self.pending_joiner is not None:
            raise Busy(self.code)

        self.touch(now)
        if self.admission == AdmissionPolicy.OPEN:
            self.members.append(endpoint_id)
            return JoinOutcome.JOINED
        self.pending_joiner = endpoint_id
        return JoinOutcome.PENDING

    def _check_pending(self, caller_id: str, participant_id: str):
        if caller_id != self.creator_id:
            raise Forbidden(self.code)
        if self.pending_joiner is None:
            raise NoWaitingParticipant(self.code)
        if participant_id != self.pending_joiner:
            raise InvalidTarget(self.code, f"{participant_id} is not waiting on {self.code}")

    def accept(self, caller_id: str, participant_id: str, now: float):
        self._check_pending(caller_id, participant_id)
        if self.is_full:
            raise Full(self.code)
        self.members.append(participant_id)
        self.pending_joiner = None
        self.touch(now)

    def reject(self, caller_id: str, participant_id: str, now: float):
        self._check_pending(caller_id, participant_id)
        self.pending_joiner = None
        self.touch(now)

    # ------------------ departure ------------------

    def remove(self, endpoint_id: str) -> Departure:
        """Remove an endpoint, whether it is a member or the pending joiner.

        Removing an endpoint that is neither is a no-op.
        """
        dep = Departure(endpoint_id=endpoint_id)

        if endpoint_id == self.pending_joiner:
            self.pending_joiner = None
            dep.was_pending = True
            dep.remaining = list(self.members)
            return dep

        if endpoint_id not in self.members:
            return dep

        dep.was_member = True
        self.members.remove(endpoint_id)

        if endpoint_id == self.creator_id:
            if self.members and self.creator_leaves == CreatorLeavePolicy.TRANSFER:
                self.creator_id = self.members[0]
                dep.new_creator = self.creator_id
            else:
                dep.ended = True

        if not self.members:
            dep.ended = True

        if dep.ended:
            dep.dropped_pending = self.pending_joiner
            dep.remaining = self.participants()
            self.members.clear()
            self.pending_joiner = None
        else:
            dep.remaining = self.participants()
        return dep

    def expire(self) -> List[str]:
        """Drop everyone; returns the endpoints that were attached."""
        attached = self.participants()
        self.members.clear()
        self.pending_joiner = None
        return attached

    def to_dict(self) -> dict:
        return {
            "callCode": self.code,
            "sessionId": self.session_id,
            "creatorId": self.creator_id,
            "members": list(self.members),
            "pendingJoiner": self.pending_joiner,
            "participantCount": len(self.members),
            "status": self.status.value,
            "admission": self.admission.value,
            "createdAt": datetime.fromtimestamp(self.created_at, timezone.utc).isoformat(),
            "lastActivityAt": datetime.fromtimestamp(self.last_activity_at, timezone.utc).isoformat(),
        }
