"""Jobs domain - Job lifecycle, line items, payments and the technician view"""

from .router import router, tech_router

__all__ = ["router", "tech_router"]
