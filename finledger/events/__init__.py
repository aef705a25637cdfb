"""Structured event logging package."""

from finledger.events.logger import EventLogger, configure_logging

__all__ = ["EventLogger", "configure_logging"]
