"""Announcements Module"""

from .jobs import register_announcement_jobs
from .router import router

__all__ = ["register_announcement_jobs", "router"]
