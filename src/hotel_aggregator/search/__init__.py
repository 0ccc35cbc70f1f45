"""Search parameters and the provider fan-out."""

from .coordinator import FanOutSearchCoordinator
from .params import SearchParams, SearchValidationError

__all__ = [
    "FanOutSearchCoordinator",
    "SearchParams",
    "SearchValidationError",
]
