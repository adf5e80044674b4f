"""
Application wiring: lifespan, CORS and security middlewares.
"""

from .lifespan import lifespan
from .cors import configure_cors
from .middlewares import register_middlewares

__all__ = ["lifespan", "configure_cors", "register_middlewares"]
