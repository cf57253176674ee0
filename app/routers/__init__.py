"""
API Routers
Separate router modules for each domain.
"""

from app.routers import profiles

__all__ = ["profiles"]
