"""
bookingengine - Availability and booking engine for multi-staff service businesses.
"""

__version__ = "0.1.0"
