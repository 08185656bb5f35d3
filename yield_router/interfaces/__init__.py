"""Protocol interfaces for the yield router."""
from .asset import AssetToken
from .notifier import Notifier

__all__ = ["AssetToken", "Notifier"]
