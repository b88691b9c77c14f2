# Routes module
from .extractions import router as extractions_router

__all__ = ["extractions_router"]
