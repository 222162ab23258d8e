from __future__ import annotations

from collections.abc import Callable
import time

import loguru
from loguru import logger

LOG_THROTTLE_SECONDS = 5.0


class CacheLogger:
    """Handles logging for ReadThroughCache.

    Hot-path messages (hits, waits, loads) are emitted at most once per
    throttle window for each message and key.
    """

    def __init__(
        self,
        logger_instance: loguru.Logger = logger,
        *,
        throttle_seconds: float = LOG_THROTTLE_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
            throttle_seconds: Minimum gap between repeats of a hot-path message
            monotonic: Clock used for throttling
        """
        self._logger = logger_instance
        self._throttle_seconds = throttle_seconds
        self._monotonic = monotonic
        self._last_emitted: dict[str, float] = {}

    def _should_emit(self, message_key: str) -> bool:
        now = self._monotonic()
        last = self._last_emitted.get(message_key)
        if last is not None and now - last < self._throttle_seconds:
            return False
        self._last_emitted[message_key] = now
        return True

    def hit(self, key: str, age_seconds: float) -> None:
        """Log cache hit."""
        if self._should_emit(f"hit:{key}"):
            self._logger.bind(key=key, age=round(age_seconds, 1)).debug(
                "Cache hit for {} ({:.1f}s old)", key, age_seconds
            )

    def waiting_inflight(self, key: str) -> None:
        """Log caller joining an in-flight load."""
        if self._should_emit(f"wait:{key}"):
            self._logger.bind(key=key).debug(
                "Waiting on in-flight load of {}", key
            )

    def loading(self, key: str) -> None:
        """Log load start."""
        if self._should_emit(f"load:{key}"):
            self._logger.bind(key=key).debug("Loading {}", key)

    def loaded(self, key: str, count: int) -> None:
        """Log load result."""
        if self._should_emit(f"loaded:{key}"):
            self._logger.bind(key=key, count=count).info(
                "Loaded {} records for {}", count, key
            )

    def fetch_failed(self, key: str, error: BaseException) -> None:
        """Log load failure."""
        self._logger.bind(key=key, error=str(error)).error(
            "Failed to load {}: {}", key, error
        )

    def source_failed(self, source: str, key: str, error: BaseException) -> None:
        """Log data source failure."""
        self._logger.bind(source=source, key=key, error=str(error)).warning(
            "Source {} failed for {}: {}", source, key, error
        )

    def source_timeout(self, source: str, key: str, timeout: float) -> None:
        """Log data source timeout."""
        self._logger.bind(source=source, key=key, timeout=timeout).warning(
            "Source {} timed out after {}s for {}", source, timeout, key
        )

    def no_source(self, key: str) -> None:
        """Log every data source failing."""
        self._logger.bind(key=key).warning(
            "No source could provide {}; using empty list", key
        )

    def write(self, key: str, op: str) -> None:
        """Log write through the cache."""
        self._logger.bind(key=key, op=op).debug("Cache write {} on {}", op, key)

    def cleared(self) -> None:
        """Log cache cleared."""
        self._logger.info("Cache cleared")
