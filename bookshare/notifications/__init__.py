from .events import TrustEvent
from .dispatcher import Dispatcher

__all__ = [
    "TrustEvent",
    "Dispatcher",
]
