from .layout import LayoutResolver
from .state import NetworkStateStore

__all__ = ["LayoutResolver", "NetworkStateStore"]
