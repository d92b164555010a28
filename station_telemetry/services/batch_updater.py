"""Batch consistency updater: the single write path for derived station metrics.

Both the heartbeat and the HTTP batch endpoint submit through one updater
instance so that batch submissions are serialized; no two batches ever hit
the registry concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from station_telemetry.core.config import settings
from station_telemetry.core.errors import TelemetryError
from station_telemetry.services.station_registry import BatchUpdateItem, StationRegistry

logger = logging.getLogger(__name__)


class BatchError(TelemetryError):
    """The batch could not be applied; in atomic mode nothing was written."""

    status_code = 500
    code = "BATCH_FAILED"

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Batch update failed: {cause}")


class BatchUpdater:
    def __init__(self, registry: StationRegistry, atomic: bool | None = None) -> None:
        self._registry = registry
        self.atomic = settings.batch_atomic if atomic is None else atomic
        self._lock = asyncio.Lock()

    async def apply(
        self,
        items: Sequence[BatchUpdateItem],
        applied_at: datetime | None = None,
    ) -> list[int]:
        """Write ``items`` and return the ids of the stations updated.

        ``last_updated`` is stamped with ``applied_at`` (default: now), the
        time of the sync rather than the time of the source readings.

        Raises:
            BatchError: the registry write failed.
        """
        if not items:
            return []

        async with self._lock:
            applied_at = applied_at or datetime.now(timezone.utc)
            try:
                applied = await self._registry.batch_update(
                    items, applied_at=applied_at, atomic=self.atomic
                )
            except Exception as exc:
                logger.error("Batch of %d station updates failed: %s", len(items), exc)
                raise BatchError(exc) from exc

        logger.info(
            "Batch applied: %d/%d stations updated (atomic=%s)",
            len(applied), len(items), self.atomic,
        )
        return applied
