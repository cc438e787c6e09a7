"""Session orchestration."""

from .controller import SessionController
from .state import Session

__all__ = ["Session", "SessionController"]
