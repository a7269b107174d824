import json
import logging
import warnings
from datetime import datetime, timezone
from pathlib import Path

from .errors import SyntheticOrderWarning

logger = logging.getLogger(__name__)


class AlertSink:
    """Operational alerts: a warning log line plus one JSON line in the alerts file."""

    def __init__(self, path: str | None):
        self.path = Path(path) if path else None

    def _append(self, entry: dict):
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.error("failed to write alert: %s", e)

    def synthetic_order(self, info: dict):
        entry = {
            "time": datetime.now(timezone.utc).isoformat(),
            "type": "synthetic_order_returned",
            "info": info,
        }
        self._append(entry)
        logger.warning("ALERT synthetic order returned", extra={"alert": entry})
        warnings.warn(
            f"synthetic order {info.get('order_id')} cannot be paid",
            SyntheticOrderWarning,
            stacklevel=3,
        )
