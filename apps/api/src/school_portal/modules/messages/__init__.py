"""Admin Mailbox Module"""

from .jobs import register_message_jobs
from .router import router

__all__ = ["register_message_jobs", "router"]
