"""Noise filter: answers terminal probes before output reaches observers."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

# Device Status Report "where is the cursor?" and the answer we give.
CURSOR_POSITION_REQUEST = "\x1b[6n"
CURSOR_POSITION_RESPONSE = "\x1b[1;1R"

UPDATE_PROMPT = "update available"
DEFAULT_UPDATE_DISMISS_KEYS = "2\r"


class NoiseFilter:
    """Per-session filter applied to every raw output chunk.

    Rules, in order:

    1. A cursor-position request is answered immediately with a fixed
       position report and stripped from the chunk. Observers render the
       terminal in a browser and cannot answer it themselves, and some
       commands stall until they get a reply.
    2. The first chunk mentioning ``update available`` is answered with the
       dismissal keystrokes and dropped entirely. Later occurrences pass
       through untouched.

    ``reply`` writes back to the process; ``filter`` returns the chunk to
    forward, or ``None`` when it must be dropped.
    """

    def __init__(
        self,
        reply: Callable[[str], None],
        update_dismiss_keys: str = DEFAULT_UPDATE_DISMISS_KEYS,
    ) -> None:
        self._reply = reply
        self._update_dismiss_keys = update_dismiss_keys
        self.update_dismissed = False

    def filter(self, chunk: str) -> str | None:
        if CURSOR_POSITION_REQUEST in chunk:
            self._reply(CURSOR_POSITION_RESPONSE)
            chunk = chunk.replace(CURSOR_POSITION_REQUEST, "")

        if not self.update_dismissed and UPDATE_PROMPT in chunk.lower():
            self.update_dismissed = True
            logger.info("Dismissing update prompt")
            self._reply(self._update_dismiss_keys)
            return None

        return chunk

    def wrap(self, callback: Callable[[str], None]) -> Callable[[str], None]:
        """Wrap a data callback so it only sees filtered chunks."""

        def _on_data(chunk: str) -> None:
            filtered = self.filter(chunk)
            if filtered is not None:
                callback(filtered)

        return _on_data
