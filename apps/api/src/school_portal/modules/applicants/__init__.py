"""
Applicants Module

Teacher and student applicants from intake to final decision:
- Public intake with e-mail confirmation (router)
- Admin review, interviews, teaching demos, decisions and archive (admin_router)
- Daily retention sweep of decided applicants (jobs)

Status flow:
pending -> submitted -> reviewing -> interview_scheduled -> interview_completed
-> demo_scheduled -> demo_completed -> onboarding -> archived
(rejected is reachable from reviewing and every later pre-decision status)
"""

from .admin_router import router as admin_router
from .jobs import register_applicant_jobs
from .router import router

__all__ = ["admin_router", "register_applicant_jobs", "router"]
