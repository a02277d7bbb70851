"""
Transient user notices.

Every recoverable failure surfaces here instead of crashing the flow.
Notices expire on their own after a TTL (auto-dismiss), or can be
dismissed early by id.
"""

import time
import uuid
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from .constants import ROAST_PROTOCOL

logger = logging.getLogger("roasted.notices")


class NoticeLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class Notice:
    message: str
    level: NoticeLevel = NoticeLevel.INFO
    created_at: float = field(default_factory=time.time)
    ttl: float = ROAST_PROTOCOL.NOTICE_TTL_SECONDS
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])

    def expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) - self.created_at >= self.ttl

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "message": self.message,
            "level": self.level.value,
            "created_at": self.created_at,
        }


class NoticeBoard:
    """Holds live notices. Expired ones are pruned on every read."""

    def __init__(self, ttl: float = ROAST_PROTOCOL.NOTICE_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        self._ttl = ttl
        self._clock = clock
        self._notices: list[Notice] = []

    def post(self, message: str, level: NoticeLevel = NoticeLevel.INFO) -> Notice:
        notice = Notice(message=message, level=level, created_at=self._clock(), ttl=self._ttl)
        self._notices.append(notice)
        logger.debug(f"Notice [{level.value}]: {message}")
        return notice

    def info(self, message: str) -> Notice:
        return self.post(message, NoticeLevel.INFO)

    def success(self, message: str) -> Notice:
        return self.post(message, NoticeLevel.SUCCESS)

    def error(self, message: str) -> Notice:
        return self.post(message, NoticeLevel.ERROR)

    def active(self) -> list[Notice]:
        now = self._clock()
        self._notices = [n for n in self._notices if not n.expired(now)]
        return list(self._notices)

    def dismiss(self, notice_id: str) -> bool:
        before = len(self._notices)
        self._notices = [n for n in self._notices if n.id != notice_id]
        return len(self._notices) < before

    def clear(self) -> None:
        self._notices.clear()
