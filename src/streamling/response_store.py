"""
Out-of-band store for streamed responses in batch mode.

Keeps large, fast-changing texts out of the published job snapshots while many
streams run concurrently.
"""

from __future__ import annotations

import time
import typing as t

import structlog

log = structlog.get_logger(__name__)

DEFAULT_MAX_AGE_SECONDS = 5 * 60


class ResponseStore:
    """
    Keyed text buffers with last-update tracking.

    Parameters
    ----------
    clock : typing.Callable[[], float], optional
        Monotonic clock used for staleness.
    """

    def __init__(self, clock: t.Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._responses: dict[str, list[str]] = {}
        self._updated_at: dict[str, float] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._responses

    def __len__(self) -> int:
        return len(self._responses)

    def add(self, key: str, initial: str = "") -> None:
        """
        Create or replace an entry.
        """
        self._responses[key] = [initial] if initial else []
        self._updated_at[key] = self._clock()

    def append(self, key: str, chunk: str) -> None:
        """
        Append a chunk, creating the entry if missing.
        """
        self._responses.setdefault(key, []).append(chunk)
        self._updated_at[key] = self._clock()

    def replace(self, key: str, text: str) -> None:
        self.add(key, initial=text)

    def get(self, key: str) -> str:
        return "".join(self._responses.get(key, ()))

    def delete(self, key: str) -> None:
        self._responses.pop(key, None)
        self._updated_at.pop(key, None)

    def clear(self) -> None:
        self._responses.clear()
        self._updated_at.clear()

    def cleanup_stale(self, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS) -> int:
        """
        Purge entries that were not touched within ``max_age_seconds``.

        Parameters
        ----------
        max_age_seconds : float, optional
            Maximum idle age of an entry.

        Returns
        -------
        int
            Number of purged entries.
        """
        cutoff = self._clock() - max_age_seconds
        stale = [key for key, updated_at in self._updated_at.items() if updated_at < cutoff]
        for key in stale:
            self.delete(key)
        if stale:
            log.debug(event="Purged stale responses", purged_count=len(stale))
        return len(stale)
