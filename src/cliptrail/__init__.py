"""ClipTrail: bounded clipboard history with managed image resources."""

from cliptrail.services.history_service import HistoryService

__version__ = "0.1.0"

__all__ = ["HistoryService", "__version__"]
