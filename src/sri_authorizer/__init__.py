"""
Event-driven authorization of SRI electronic vouchers.
"""

__version__ = "0.1.0"
