"""notationlab package initialization.

This module exposes the editing session, which is the primary entry point
used by external callers to drive the diagram model.
"""

from .api import EditorSession
from .state import ModelStateManager

__all__ = ["EditorSession", "ModelStateManager"]
