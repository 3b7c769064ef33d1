"""Observation helpers for the notation model."""

from .notifier import ChangeListener, ChangeNotifier

__all__ = ["ChangeListener", "ChangeNotifier"]
