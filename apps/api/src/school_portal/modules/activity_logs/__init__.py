"""
Activity Logs Module

Audit trail of admin actions and automated deletions. Entries are written
in the same transaction as the action they describe.
"""

from .router import router

__all__ = ["router"]
