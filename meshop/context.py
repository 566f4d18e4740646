"""Per-run context carrying the external cancellation signal."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from meshop.errors import ReconcileCancelledError


@dataclass
class ReconcileContext:
    """Handed to every component for the duration of one reconcile run.

    Components call ``checkpoint()`` before each cluster-API call. Once
    ``cancel()`` has been called the next checkpoint raises
    ReconcileCancelledError; work already issued is left in effect.
    """

    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    def cancel(self) -> None:
        self.cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()

    def checkpoint(self, where: str = "") -> None:
        if self.cancelled.is_set():
            raise ReconcileCancelledError(where)
