from .entries import router as entries_router

__all__ = [
    'entries_router',
]
