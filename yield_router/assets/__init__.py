"""Asset implementations."""
from .token import InMemoryToken

__all__ = ["InMemoryToken"]
