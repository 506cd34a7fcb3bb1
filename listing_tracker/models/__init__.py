"""
Models package — export all SQLAlchemy models.
"""

from listing_tracker.models.property import Base, Property

__all__ = ["Base", "Property"]
