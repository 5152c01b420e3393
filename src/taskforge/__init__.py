"""
Taskforge - data-access layer for the task and inventory manager.

One query surface over SQLite (development) and PostgreSQL (production).
"""

__version__ = "0.1.0"

# Re-export everything from the actual implementation
from taskforge.core import *  # noqa
