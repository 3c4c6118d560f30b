"""Invoices domain - Invoicing from jobs, payments, voiding and PDFs"""

from .router import router

__all__ = ["router"]
