"""
Database models package
"""

from .event import EventRecord

__all__ = ["EventRecord"]
