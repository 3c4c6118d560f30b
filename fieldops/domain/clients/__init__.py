"""Clients domain - Client records, activity timeline and CSV export"""

from .router import router

__all__ = ["router"]
