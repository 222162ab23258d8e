"""Notification collaborator for newly admitted online orders."""

from __future__ import annotations

from pdvsync.notify.notifier import LoggingNotifier, NewOrderSignal, OrderNotifier

__all__ = ["LoggingNotifier", "NewOrderSignal", "OrderNotifier"]
