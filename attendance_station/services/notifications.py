"""User-visible transient notices."""
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, List

from pydantic import BaseModel, Field

from attendance_station.core.logging import get_logger

logger = get_logger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notice(BaseModel):
    level: NoticeLevel
    message: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationFeed:
    """Bounded queue of short messages for the operator.

    Every notice is logged as well, at a matching level.
    """

    def __init__(self, max_notices: int = 50) -> None:
        self._notices: Deque[Notice] = deque(maxlen=max_notices)

    def __len__(self) -> int:
        return len(self._notices)

    def publish(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._notices.append(notice)
        log = logger.warning if level == NoticeLevel.WARNING else (
            logger.error if level == NoticeLevel.ERROR else logger.info
        )
        log("Notice", level=level.value, message=message)
        return notice

    def info(self, message: str) -> Notice:
        return self.publish(NoticeLevel.INFO, message)

    def success(self, message: str) -> Notice:
        return self.publish(NoticeLevel.SUCCESS, message)

    def warning(self, message: str) -> Notice:
        return self.publish(NoticeLevel.WARNING, message)

    def error(self, message: str) -> Notice:
        return self.publish(NoticeLevel.ERROR, message)

    def peek(self) -> List[Notice]:
        return list(self._notices)

    def drain(self) -> List[Notice]:
        notices = list(self._notices)
        self._notices.clear()
        return notices
