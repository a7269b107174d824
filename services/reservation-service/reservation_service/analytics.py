import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonlAnalyticsSink:
    def __init__(self, path: str):
        self.path = Path(path)

    def _write(self, line: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    async def record(self, event_name: str, payload: dict | None = None):
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_name,
            "payload": payload or {},
        }
        try:
            await asyncio.to_thread(self._write, json.dumps(entry, default=str))
        except OSError as e:
            logger.warning("analytics record failed for %s: %s", event_name, e)
