import shutil

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.api.deps import get_container
from app.models.job import utcnow
from app.services.container import ServiceContainer

router = APIRouter()


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)):
    """
    Report storage, ffmpeg and remote processing availability
    """
    config = container.settings
    storage_ok = container.storage.is_configured()
    ffmpeg_ok = shutil.which(config.FFMPEG_PATH) is not None
    remote = await container.delegation.health()
    jobs = container.registry.list()

    if not storage_ok:
        overall = "unhealthy"
    elif not ffmpeg_ok:
        overall = "degraded"
    else:
        overall = "healthy"

    content = {
        "status": overall,
        "timestamp": utcnow().isoformat(),
        "version": config.VERSION,
        "environment": config.ENVIRONMENT,
        "checks": {
            "storage": storage_ok,
            "ffmpeg": ffmpeg_ok,
            "externalProcessing": remote["status"] == "available",
        },
        "processingServices": {
            config.REMOTE_SERVICE_NAME: remote,
        },
        "jobs": {
            "active": sum(1 for job in jobs if not job.is_terminal),
            "total": len(jobs),
            "runningLocally": container.orchestrator.active_runs,
        },
    }

    return JSONResponse(
        status_code=status.HTTP_200_OK if storage_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content
    )
