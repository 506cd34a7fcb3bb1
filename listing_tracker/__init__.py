"""
Listing Tracker — price-tracking job for the property listing dashboard.
"""

__version__ = "0.1.0"
