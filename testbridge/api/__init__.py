"""Direct-mode HTTP routes, mounted under the configured API prefix."""

from fastapi import APIRouter

from testbridge.api.artifacts import router as artifacts_router
from testbridge.api.files import router as files_router
from testbridge.api.reports import router as reports_router

router = APIRouter()

router.include_router(files_router, tags=["Tests"])
router.include_router(reports_router, tags=["Reports"])
router.include_router(artifacts_router, tags=["Artifacts"])
