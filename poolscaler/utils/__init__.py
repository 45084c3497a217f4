"""
Utils Module
============
Helpers dùng chung (logging).
"""

from .logging import configure_logging

__all__ = ['configure_logging']
