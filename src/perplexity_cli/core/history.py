"""
Query history recording for Perplexity CLI.
"""

import logging
import time
from typing import Callable, List, Optional

from ..config.store import ConfigStore, QueryRecord

logger = logging.getLogger(__name__)

MAX_HISTORY_ENTRIES = 10


def _now_millis() -> int:
    return int(time.time() * 1000)


class HistoryRecorder:
    """Prepends query records to the stored history, keeping the newest N."""

    def __init__(
        self,
        store: ConfigStore,
        limit: int = MAX_HISTORY_ENTRIES,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize the recorder.

        Args:
            store: Config store holding the history list
            limit: Maximum number of records kept
            clock: Returns the current time in epoch milliseconds
        """
        self.store = store
        self.limit = limit
        self._clock = clock or _now_millis

    def record(self, question: str, model: str) -> None:
        """Store a record for a query about to be sent. Best-effort."""
        config = self.store.load()
        entry = QueryRecord(question=question, model=model, timestamp=self._clock())

        config.history = [entry, *config.history][: self.limit]

        if not self.store.save(config):
            logger.warning(f"Query history was not saved for model {model}")

    def recent(self) -> List[QueryRecord]:
        """Return the stored history, newest first."""
        return list(self.store.load().history[: self.limit])
