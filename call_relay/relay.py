"""
relay.py — forwards offer / answer / ICE candidate payloads to the other member.

Relay is fire-and-forget: a message for a call that is missing, not yet full,
or that the sender is not part of is dropped without telling the sender.
"""

import logging
from typing import Dict, List

from .schemas import Outbound, SignalMessage
from .table import CallTable

logger = logging.getLogger(__name__)

# kind -> (inbound event, outbound event)
SIGNAL_KINDS: Dict[str, tuple] = {
    "offer": ("send-offer", "receive-offer"),
    "answer": ("send-answer", "receive-answer"),
    "candidate": ("send-ice-candidate", "receive-ice-candidate"),
}


def relay(kind: str, sender_id: str, message: SignalMessage, table: CallTable) -> List[Outbound]:
    _, out_event = SIGNAL_KINDS[kind]
    with table.checkout(message.code) as call:
        if call is None or not call.is_full or not call.is_member(sender_id):
            logger.debug(f"Dropped {kind} from {sender_id} for {message.code}")
            return []
        call.touch(table.now())
        targets = call.others(sender_id)
        code = call.code

    return [
        Outbound(target, out_event, {"from": sender_id, "callCode": code, kind: message.payload})
        for target in targets
    ]
