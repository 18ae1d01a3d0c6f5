from fastapi import APIRouter
from fastapi.responses import Response

from crm_api.auth.api import router as auth_router
from crm_api.core.config import get_settings
from crm_api.core.errors import NotFoundError
from crm_api.crm.api import chargeables_router, contacts_router, leads_router, tasks_router
from crm_api.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(auth_router)
router.include_router(contacts_router)
router.include_router(leads_router)
router.include_router(tasks_router)
router.include_router(chargeables_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    if not get_settings().metrics_enabled:
        raise NotFoundError("not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
