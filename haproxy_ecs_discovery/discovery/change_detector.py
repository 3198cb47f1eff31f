"""State diff engine: decides what to publish after each discovery cycle."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..logging_config import watcher_logger
from .models import Backend

logger = logging.getLogger(__name__)


def same_backends(a: list[Backend], b: list[Backend]) -> bool:
    """Order-insensitive comparison; ECS does not promise a stable task order."""
    return sorted(a) == sorted(b)


def reconcile(
    previous: list[Backend] | None,
    current: list[Backend],
    defaults: list[Backend],
    service: str = "",
    live: list[Backend] | None = None,
) -> tuple[list[Backend], bool]:
    """Compare a freshly resolved list against the previous one.

    ``previous`` is None when nothing has been discovered yet. ``live`` is what
    is currently published, if the caller tracks it separately from ``previous``;
    it is only used to report what stays in place.

    Returns:
        (published, changed) where ``published`` is the list to expose and
        ``changed`` says whether it must be published now.

    An empty discovery never blanks out a working configuration: it falls back
    to ``defaults`` if there are any, otherwise ``previous`` is kept.
    """
    if previous is not None and same_backends(previous, current):
        logger.info("%s backends are unchanged (count %d)", service, len(current))
        return previous, False
    previous = previous or []

    if current:
        logger.info("%s backends have changed (count %d)", service, len(current))
        return current, True

    if defaults:
        logger.warning(
            "No backends for service %s; using default servers: %s",
            service, [b.as_dict() for b in defaults],
        )
        return defaults, True

    logger.warning(
        "No backends and no default servers for service %s; keeping published backends: %s",
        service, [b.as_dict() for b in (previous if live is None else live)],
    )
    return previous, False


class ChangeDetector:
    """Holds one watcher's reconciliation state and publishes through a callback.

    Only the poll thread calls apply(); anyone may call snapshot(). The swap of
    the published list and the reconfiguration callback happen under the same
    lock, so a reader never observes one without the other. The lock is
    re-entrant so the callback itself may read snapshot().
    """

    def __init__(
        self,
        service: str,
        defaults: list[Backend],
        on_reconfigure: Callable[[str, list[Backend]], None],
    ) -> None:
        self._service = service
        self._defaults = list(defaults)
        self._on_reconfigure = on_reconfigure
        self._log = watcher_logger(__name__, service)
        self._lock = threading.RLock()
        self._previous: list[Backend] | None = None
        self._published: list[Backend] = []

    def apply(self, current: list[Backend]) -> bool:
        """Reconcile ``current`` and publish if needed. Returns True on publish."""
        with self._lock:
            published, changed = reconcile(
                self._previous, current, self._defaults, self._service, live=self._published,
            )
            self._previous = list(current)
            if changed:
                self._log.info(
                    "Discovered %d backends for service %s",
                    len(published), self._service,
                    extra={"backend_count": len(published)},
                )
                self._published = list(published)
                self._on_reconfigure(self._service, list(published))
            return changed

    def snapshot(self) -> list[Backend]:
        with self._lock:
            return list(self._published)

    def reset(self) -> None:
        """Forget the previous discovery (e.g. on SIGHUP) so the next cycle republishes."""
        with self._lock:
            self._log.info("Change detector state reset for %s; next cycle will republish", self._service)
            self._previous = None
