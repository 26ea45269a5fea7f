"""Preference store: the notification email, persisted as a small JSON document.

Read once at startup to seed the session's NotificationTarget; written whenever
the user sets or clears the address. Runs never read it directly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

EMAIL_KEY = "notificationEmail"

_DEFAULT_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


class PreferenceStore:
    """JSON-file key/value store for user preferences."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = data_dir or _DEFAULT_DATA_DIR
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.prefs_file = self.data_dir / "preferences.json"

    def load_email(self) -> str | None:
        value = self._load().get(EMAIL_KEY)
        return value if isinstance(value, str) and value else None

    def save_email(self, email: str | None) -> None:
        """Persist the address; ``None`` or empty removes it."""
        prefs = self._load()
        if email:
            prefs[EMAIL_KEY] = email
            logger.info("Saved notification email %s", email)
        elif prefs.pop(EMAIL_KEY, None) is not None:
            logger.info("Removed notification email")
        self._save(prefs)

    def _load(self) -> dict[str, Any]:
        if not self.prefs_file.exists():
            return {}
        try:
            with open(self.prefs_file, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self.prefs_file, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, prefs: dict[str, Any]) -> None:
        with open(self.prefs_file, "w", encoding="utf-8") as f:
            json.dump(prefs, f, indent=2, ensure_ascii=False)
