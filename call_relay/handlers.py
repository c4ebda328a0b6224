"""
handlers.py — one function per inbound event.

Every handler has the shape handler(sender_id, data, table) -> List[Outbound]
and never touches a socket; the caller delivers whatever comes back.
Admission errors are turned into a reply to the sender by dispatch().
"""

import logging
from typing import Callable, Dict, List

from pydantic import ValidationError

from .errors import AlreadyMember, CallError, InvalidMessage, NotFound
from .relay import SIGNAL_KINDS, relay
from .schemas import CallCodeMessage, Outbound, ParticipantMessage, SignalMessage
from .session import Departure, JoinOutcome
from .table import CallTable

logger = logging.getLogger(__name__)

Handler = Callable[[str, dict, CallTable], List[Outbound]]


def _parse(model, data):
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise InvalidMessage(detail=f"{model.__name__}: {e.error_count()} invalid field(s)")


# ------------------ admission ------------------

def create_call(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    call = table.create(sender_id)
    return [Outbound(sender_id, "call-created", {
        "callCode": call.code,
        "sessionId": call.session_id,
        "creatorId": sender_id,
        "participantCount": 1,
        "status": call.status.value,
    })]


def join_call(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    msg = _parse(CallCodeMessage, data)

    current = table.call_of(sender_id)
    if current is not None:
        raise AlreadyMember(current)

    with table.checkout(msg.code) as call:
        if call is None:
            raise NotFound(msg.code)
        # claim the endpoint first so it can never end up in two calls
        bound = table.bind(sender_id, call.code)
        try:
            outcome = call.join(sender_id, table.now())
        except CallError:
            if bound:
                table.release(sender_id, call.code)
            raise
        code, session_id, creator_id = call.code, call.session_id, call.creator_id
        members = list(call.members)

    if outcome == JoinOutcome.PENDING:
        logger.info(f"{sender_id} waiting for approval on {code}")
        return [
            Outbound(sender_id, "call-waiting-for-approval", {"callCode": code}),
            Outbound(creator_id, "participant-waiting", {"callCode": code, "participantId": sender_id}),
        ]

    logger.info(f"{sender_id} joined {code}")
    out = [Outbound(sender_id, "call-joined", {
        "callCode": code,
        "sessionId": session_id,
        "creatorId": creator_id,
        "participantCount": len(members),
        "status": "active",
    })]
    for member in members:
        if member != sender_id:
            out.append(Outbound(member, "participant-joined", {
                "callCode": code,
                "participantId": sender_id,
                "participantCount": len(members),
            }))
    return out


def accept_participant(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    msg = _parse(ParticipantMessage, data)
    with table.checkout(msg.code) as call:
        if call is None:
            raise NotFound(msg.code)
        call.accept(sender_id, msg.participant_id, table.now())
        members = list(call.members)
        code, session_id = call.code, call.session_id

    logger.info(f"{msg.participant_id} accepted into {code}")
    payload = {
        "callCode": code,
        "sessionId": session_id,
        "participantId": msg.participant_id,
        "participantCount": len(members),
    }
    return [Outbound(member, "participant-accepted", dict(payload)) for member in members]


def reject_participant(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    msg = _parse(ParticipantMessage, data)
    with table.checkout(msg.code) as call:
        if call is None:
            raise NotFound(msg.code)
        call.reject(sender_id, msg.participant_id, table.now())
        code = call.code
        table.release(msg.participant_id, code)

    logger.info(f"{msg.participant_id} rejected from {code}")
    return [
        Outbound(msg.participant_id, "call-rejected", {"callCode": code}),
        Outbound(sender_id, "participant-rejected", {"callCode": code, "participantId": msg.participant_id}),
    ]


# ------------------ departure ------------------

def departure_notices(code: str, dep: Departure, creator_id: str, participant_count: int) -> List[Outbound]:
    """Notifications for everyone still attached after dep; shared by leave and disconnect."""
    if dep.noop:
        return []
    if dep.ended:
        return [Outbound(target, "call-ended", {
            "callCode": code,
            "reason": "creator-left",
            "participantId": dep.endpoint_id,
        }) for target in dep.remaining]

    data = {
        "callCode": code,
        "participantId": dep.endpoint_id,
        "participantCount": participant_count,
        "creatorId": creator_id,
        "wasPending": dep.was_pending,
    }
    return [Outbound(target, "participant-left", dict(data)) for target in dep.remaining]


def _depart(sender_id: str, code: str, table: CallTable) -> List[Outbound]:
    with table.checkout(code) as call:
        if call is None:
            return []
        dep = call.remove(sender_id)
        if dep.noop:
            return []
        code, creator_id, count = call.code, call.creator_id, len(call.members)
        table.release(sender_id, code)
        if dep.ended:
            table.delete(code)

    if dep.ended:
        logger.info(f"Call {code} ended: {sender_id} left")
    else:
        logger.info(f"{sender_id} left {code} ({count} remaining)")
    return departure_notices(code, dep, creator_id, count)


def leave_call(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    msg = _parse(CallCodeMessage, data)
    return _depart(sender_id, msg.code, table)


def disconnect(sender_id: str, table: CallTable) -> List[Outbound]:
    code = table.call_of(sender_id)
    if code is None:
        return []
    return _depart(sender_id, code, table)


def heartbeat(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    msg = _parse(CallCodeMessage, data)
    with table.checkout(msg.code) as call:
        if call is None or not call.is_participant(sender_id):
            return []
        call.touch(table.now())
        code = call.code
    return [Outbound(sender_id, "heartbeat-ack", {"callCode": code})]


# ------------------ signaling ------------------

def _signal_handler(kind: str) -> Handler:
    def handler(sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
        return relay(kind, sender_id, _parse(SignalMessage, data), table)
    handler.__name__ = SIGNAL_KINDS[kind][0].replace("-", "_")
    return handler


HANDLERS: Dict[str, Handler] = {
    "create-call": create_call,
    "join-call": join_call,
    "accept-participant": accept_participant,
    "reject-participant": reject_participant,
    "leave-call": leave_call,
    "heartbeat": heartbeat,
}
for _kind, (_event, _) in SIGNAL_KINDS.items():
    HANDLERS[_event] = _signal_handler(_kind)


def dispatch(event: str, sender_id: str, data: dict, table: CallTable) -> List[Outbound]:
    """Run the handler for event; admission errors become a reply to sender_id."""
    handler = HANDLERS.get(event)
    if handler is None:
        logger.warning(f"Unknown event {event!r} from {sender_id}")
        return [Outbound(sender_id, "call-error", {"reason": "unknown-event", "event": event})]
    try:
        return handler(sender_id, data, table)
    except CallError as e:
        logger.info(f"{event} from {sender_id} refused: {e.reason}")
        return [Outbound(sender_id, e.event, e.payload())]
