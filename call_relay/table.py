"""
The in-memory call table.

Locking:
  * self._lock guards the code -> session mapping and the endpoint index only.
  * each CallSession carries its own lock; checkout() holds it for one operation.
  * order is always session lock, then table lock. Never the reverse.
"""

import logging
import secrets
import string
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from .errors import AlreadyMember, CodeSpaceExhausted
from .session import AdmissionPolicy, CallSession, CreatorLeavePolicy

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def normalize_code(code) -> str:
    if code is None:
        return ""
    return str(code).strip().upper()


class CallTable:
    def __init__(self,
                 admission: AdmissionPolicy = AdmissionPolicy.GATED,
                 creator_leaves: CreatorLeavePolicy = CreatorLeavePolicy.TRANSFER,
                 code_length: int = 6,
                 max_code_attempts: int = 64,
                 clock: Callable[[], float] = time.time):
        self.admission = AdmissionPolicy(admission)
        self.creator_leaves = CreatorLeavePolicy(creator_leaves)
        self.code_length = code_length
        self.max_code_attempts = max_code_attempts
        self.clock = clock

        self._calls: Dict[str, CallSession] = {}
        # endpoint id -> code of the call it is a member of or waiting on
        self._engaged: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, code) -> bool:
        return normalize_code(code) in self._calls

    def now(self) -> float:
        return self.clock()

    def _draw_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.code_length))

    # ------------------ mapping ------------------

    def create(self, creator_id: str) -> CallSession:
        now = self.clock()
        with self._lock:
            if creator_id in self._engaged:
                raise AlreadyMember(self._engaged[creator_id])

            for _ in range(self.max_code_attempts):
                code = self._draw_code()
                if code not in self._calls:
                    break
                logger.warning(f"Call code collision on {code}, drawing again")
            else:
                raise CodeSpaceExhausted(
                    f"no free call code after {self.max_code_attempts} attempts "
                    f"({len(self._calls)} live calls)"
                )

            session = CallSession(
                code=code,
                session_id=uuid.uuid4().hex,
                creator_id=creator_id,
                created_at=now,
                last_activity_at=now,
                admission=self.admission,
                creator_leaves=self.creator_leaves,
                members=[creator_id],
            )
            self._calls[code] = session
            self._engaged[creator_id] = code
        logger.info(f"Call {code} created by {creator_id}")
        return session

    def get(self, code) -> Optional[CallSession]:
        return self._calls.get(normalize_code(code))

    def delete(self, code):
        code = normalize_code(code)
        with self._lock:
            session = self._calls.pop(code, None)
            if session is None:
                return
            session.closed = True
            for endpoint_id in [e for e, c in self._engaged.items() if c == code]:
                del self._engaged[endpoint_id]
        logger.info(f"Call {code} removed")

    def for_each(self) -> Iterator[CallSession]:
        with self._lock:
            snapshot = list(self._calls.values())
        return iter(snapshot)

    # ------------------ per-record access ------------------

    @contextmanager
    def checkout(self, code):
        """Exclusive handle on one call for the length of the with-block.

        Yields None when the call does not exist (or was removed while waiting
        for its lock). A call left with no members is removed on exit.
        """
        session = self.get(code)
        if session is None:
            yield None
            return
        with session.lock:
            if session.closed:
                yield None
                return
            try:
                yield session
            finally:
                if not session.members and not session.closed:
                    self.delete(session.code)

    # ------------------ endpoint index ------------------

    def call_of(self, endpoint_id: str) -> Optional[str]:
        return self._engaged.get(endpoint_id)

    def bind(self, endpoint_id: str, code: str) -> bool:
        """Attach endpoint_id to code. Returns False if it already was.

        Raises AlreadyMember if the endpoint is attached to a different call.
        """
        with self._lock:
            current = self._engaged.get(endpoint_id)
            if current == code:
                return False
            if current is not None:
                raise AlreadyMember(current)
            self._engaged[endpoint_id] = code
            return True

    def release(self, endpoint_id: str, code: str):
        with self._lock:
            if self._engaged.get(endpoint_id) == code:
                del self._engaged[endpoint_id]
