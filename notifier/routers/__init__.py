from .main_router import main_router

__all__ = ["main_router"]
