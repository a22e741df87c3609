"""Route modules for the infotavle ad server."""

from .ad_routes import register_ad_routes
from .health_routes import register_health_routes

__all__ = [
    "register_ad_routes",
    "register_health_routes",
]
