"""
SEEN CACHE - Persistent storage for preventing duplicate new-pair alerts

Features:
- One entry per token (chain:address), created when the token passes gating
- Entries expire 24h after first sighting (hourly sweep)
- Persists to JSON file after every mutation (survives restarts)

The cache file is stored at data/seen_pairs.json by default.
"""

import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from .models import SeenEntry

logger = logging.getLogger(__name__)


class SeenCache:
    """
    Tracks tokens that already produced a new-pair alert.
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = time.time):
        self.config = config or {}
        self.cache_file = Path(self.config.get('cache_file', 'data/seen_pairs.json'))
        self.max_age_hours = self.config.get('max_age_hours', 24)
        self.cleanup_interval_seconds = self.config.get('cleanup_interval_seconds', 3600)
        self._clock = clock

        self._entries: Dict[str, SeenEntry] = {}
        self._last_cleanup = self._clock()

        self._load_from_file()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def __contains__(self, token_key: str) -> bool:
        return token_key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, token_key: str) -> Optional[SeenEntry]:
        return self._entries.get(token_key)

    def add_many(self, items: Iterable) -> int:
        """
        Insert a batch of (token_key, created_at_ms) pairs and persist once.

        Returns:
            Number of entries inserted
        """
        now = self._now_ms()
        added = 0
        for token_key, created_at_ms in items:
            if token_key in self._entries:
                continue
            self._entries[token_key] = SeenEntry(
                token_key=token_key,
                first_seen_ms=now,
                created_at_ms=created_at_ms or 0,
            )
            added += 1

        if added:
            self._save_to_file()
        return added

    def cleanup_expired(self) -> int:
        """Remove entries first seen more than `max_age_hours` ago."""
        now = self._now_ms()
        max_age_ms = self.max_age_hours * 3600 * 1000

        expired = [
            key for key, entry in self._entries.items()
            if now - entry.first_seen_ms > max_age_ms
        ]
        for key in expired:
            del self._entries[key]

        self._last_cleanup = self._clock()

        if expired:
            self._save_to_file()
            logger.info(f"[MEMORY] Cleaned {len(expired)} old cache entries")
        return len(expired)

    def maybe_cleanup(self) -> int:
        """Run the sweep if the cleanup interval elapsed."""
        if self._clock() - self._last_cleanup > self.cleanup_interval_seconds:
            return self.cleanup_expired()
        return 0

    def _load_from_file(self) -> None:
        """Load entries from persistence file."""
        try:
            if self.cache_file.exists():
                with open(self.cache_file, 'r') as f:
                    data = json.load(f)
                entries = data.get('entries', {})
                self._entries = {}
                for key, value in entries.items():
                    try:
                        self._entries[key] = SeenEntry.from_dict(key, value)
                    except (TypeError, ValueError, AttributeError) as e:
                        logger.warning(f"[CACHE] Dropping unreadable entry {key}: {e}")
                logger.info(f"[CACHE] Loaded {len(self._entries)} seen tokens from file")
            else:
                self._entries = {}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"[CACHE] Failed to load cache, starting fresh: {e}")
            self._entries = {}

    def _save_to_file(self) -> None:
        """Save entries to persistence file."""
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)

            data = {
                'version': 1,
                'last_updated': time.strftime('%Y-%m-%d %H:%M:%S'),
                'total_count': len(self._entries),
                'entries': {key: entry.to_dict() for key, entry in self._entries.items()},
            }

            with open(self.cache_file, 'w') as f:
                json.dump(data, f, indent=2)

        except OSError as e:
            logger.error(f"[CACHE] Failed to save cache: {e}")

    def get_stats(self) -> Dict:
        """Size and age (minutes) of the oldest entry."""
        now = self._now_ms()
        oldest_ms = max((now - e.first_seen_ms for e in self._entries.values()), default=0)
        return {
            'size': len(self._entries),
            'oldest_minutes': int(oldest_ms / 60000),
            'file_path': str(self.cache_file),
        }
