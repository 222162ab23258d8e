from __future__ import annotations

import loguru
from loguru import logger


class RemoteSourceLogger:
    """Handles logging for the Firebase order source."""

    def __init__(self, logger_instance: loguru.Logger = logger) -> None:
        """Initialize logger.

        Args:
            logger_instance: Logger instance to use (defaults to loguru.logger)
        """
        self._logger = logger_instance

    def stream_opened(self, path: str) -> None:
        """Log change stream opened."""
        self._logger.bind(path=path).info("Listening for changes on {}", path)

    def stream_closed(self, path: str) -> None:
        """Log change stream closed for good."""
        self._logger.bind(path=path).info("Stopped listening on {}", path)

    def stream_failed(self, path: str, error: Exception) -> None:
        """Log change stream dropped by an error."""
        self._logger.bind(path=path, error=str(error)).error(
            "Change stream on {} failed: {}", path, error
        )

    def stream_reconnecting(self, path: str, delay_seconds: float) -> None:
        """Log change stream about to be reopened."""
        self._logger.bind(path=path, delay=delay_seconds).warning(
            "Reopening change stream on {} in {:.1f}s", path, delay_seconds
        )

    def stream_revoked(self, path: str, event_type: str) -> None:
        """Log change stream closed by the server."""
        self._logger.bind(path=path, event=event_type).warning(
            "Change stream on {} closed by server ({})", path, event_type
        )

    def malformed_event(self, event_type: str, data: str) -> None:
        """Log stream event that could not be parsed."""
        self._logger.bind(event=event_type).warning(
            "Ignoring malformed {} stream event: {}", event_type, data[:200]
        )
