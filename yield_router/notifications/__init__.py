"""Notification modules."""
from .telegram import TelegramNotifier, format_amount, format_event

__all__ = ["TelegramNotifier", "format_amount", "format_event"]
