"""Estimates domain - Estimates, public approval and conversion to quote jobs"""

from .router import router

__all__ = ["router"]
