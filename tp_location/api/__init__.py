"""
API routers package
"""
from tp_location.api import location, system

__all__ = [
    "location",
    "system"
]
