# storefront/core/notices.py
import logging
from typing import Literal

from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

NoticeVariant = Literal["default", "destructive"]

# Oldest notices are dropped once a session stops draining them.
MAX_PENDING_NOTICES = 50


class Notice(SQLModel):
    """
    A dismissible message for the shopper (the storefront "toast").
    """

    title: str
    description: str = ""
    variant: NoticeVariant = "default"


class NoticeBoard:
    """
    Per-session queue of pending notices.

    Services push; the browser drains via GET /session/notices.
    """

    def __init__(self) -> None:
        self._pending: list[Notice] = []

    def push(
        self,
        title: str,
        description: str = "",
        variant: NoticeVariant = "default",
    ) -> Notice:
        notice = Notice(title=title, description=description, variant=variant)
        self._pending.append(notice)
        if len(self._pending) > MAX_PENDING_NOTICES:
            del self._pending[: len(self._pending) - MAX_PENDING_NOTICES]
        logger.debug("notice queued: %s - %s", title, description)
        return notice

    def error(self, title: str, description: str = "") -> Notice:
        return self.push(title, description, variant="destructive")

    def peek(self) -> list[Notice]:
        return list(self._pending)

    def drain(self) -> list[Notice]:
        pending, self._pending = self._pending, []
        return pending
