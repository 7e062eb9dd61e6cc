"""Client-side memory of which session belongs to which directory."""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = "~/.termrelay/sessions.json"


class SessionStore:
    """JSON file mapping a working directory to its last session id.

    A corrupt or unreadable file is treated as empty: losing this mapping
    only means the next attach starts a fresh session.
    """

    def __init__(self, path: str | Path = DEFAULT_STORE_PATH) -> None:
        self.path = Path(os.path.expanduser(str(path)))

    def _load(self) -> dict[str, Any]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable session store %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, self.path)

    def get(self, path: str) -> dict[str, Any] | None:
        entry = self._load().get(path)
        if isinstance(entry, dict) and entry.get("sessionId"):
            return entry
        return None

    def put(self, path: str, session_id: str, cwd: str | None = None) -> None:
        data = self._load()
        data[path] = {
            "path": path,
            "sessionId": session_id,
            "cwd": cwd or path,
            "createdAt": int(time.time() * 1000),
        }
        self._save(data)

    def clear(self, path: str) -> None:
        data = self._load()
        if data.pop(path, None) is not None:
            self._save(data)
