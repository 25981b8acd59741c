# erp_bridge/sync/change_detector.py
# =============================
# Incremental sync support
# - Reads the ERP entity change log for one entity type
# - Returns the ids touched inside the lookback window (a plain set)
# =============================

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Set

from erp_bridge import config
from erp_bridge.erp import erp_fetch
from erp_bridge.erp.erp_client import ERPClient

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(raw) -> Optional[datetime]:
    if not raw:
        return None
    text = str(raw).strip().replace("Z", "+00:00")
    try:
        stamp = datetime.fromisoformat(text)
    except ValueError:
        return None
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class ChangeDetector:
    def __init__(self, erp: ERPClient, clock: Callable[[], datetime] = utcnow):
        self.erp = erp
        self.clock = clock

    async def changed_entity_ids(
        self,
        entity_type: str,
        lookback: timedelta = timedelta(hours=config.ERP_CHANGE_LOOKBACK_HOURS),
    ) -> Set[str]:
        """
        Ids of `entity_type` modified after now - lookback.

        The window is kept wider than the sync cadence so a failed run heals on
        the next good one; downstream reconciliation must tolerate replays.
        """
        cutoff = self.clock() - lookback
        entries = await erp_fetch.fetch_change_log(self.erp, entity_type, cutoff)

        ids: Set[str] = set()
        for entry in entries:
            modified = parse_timestamp(entry.get("ModifiedTimestamp"))
            if modified is None:
                logger.warning("Change log entry without a usable timestamp: %s", entry)
                continue
            if modified <= cutoff:
                continue
            entity_id = entry.get("EntityId")
            if entity_id is not None:
                ids.add(str(entity_id))

        logger.info(
            "🕑 %s changes since %s: %d entries, %d distinct ids",
            entity_type, cutoff.isoformat(), len(entries), len(ids),
        )
        return ids
