from fastapi import APIRouter

from school_portal.modules.activity_logs import router as activity_logs_router
from school_portal.modules.announcements import router as announcements_router
from school_portal.modules.applicants import admin_router as applicants_admin_router
from school_portal.modules.applicants import router as applicants_router
from school_portal.modules.auth import router as auth_router
from school_portal.modules.messages import router as messages_router
from school_portal.modules.users.router import router as users_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(applicants_router, prefix="/applicants", tags=["Applicants"])

# Mounted without a prefix: serves /applicants/..., /interviews/... and /teacher-applicants/...
api_router.include_router(applicants_admin_router, tags=["Admin - Applicants"])

api_router.include_router(users_router, prefix="/users", tags=["Admin - Users"])

api_router.include_router(
    announcements_router, prefix="/announcements", tags=["Announcements"]
)

api_router.include_router(messages_router, prefix="/messages", tags=["Admin - Messages"])

api_router.include_router(
    activity_logs_router, prefix="/activity-logs", tags=["Admin - Activity Logs"]
)
