"""
janitor.py — evicts calls that have been idle longer than the staleness threshold.

Backstop for calls whose disconnect was never seen. Each call is checked under
its own lock; the table itself is never held for the whole sweep.
"""

import asyncio
import logging
from typing import List, Optional

from .schemas import Outbound
from .table import CallTable

logger = logging.getLogger(__name__)


def sweep(table: CallTable, stale_after: float, now: Optional[float] = None) -> List[Outbound]:
    """Evict idle calls; returns call-ended notices for everyone who was attached."""
    now = table.now() if now is None else now
    out: List[Outbound] = []

    for snapshot in table.for_each():
        try:
            with table.checkout(snapshot.code) as call:
                if call is None:
                    continue
                idle = now - call.last_activity_at
                if idle <= stale_after:
                    continue
                attached = call.expire()
                code = call.code
                table.delete(code)
            logger.info(f"Evicted idle call {code} after {idle:.0f}s")
            out.extend(
                Outbound(target, "call-ended", {"callCode": code, "reason": "expired"})
                for target in attached
            )
        except Exception:
            logger.exception(f"Janitor failed on call {snapshot.code}")
    return out


async def run_janitor(table: CallTable, deliver, interval: float, stale_after: float):
    """Sweep forever; deliver is an async callable taking a list of Outbound."""
    logger.info(f"Janitor running every {interval}s (stale after {stale_after}s)")
    while True:
        await asyncio.sleep(interval)
        try:
            notices = sweep(table, stale_after)
            if notices:
                await deliver(notices)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Janitor sweep failed: {e}")
