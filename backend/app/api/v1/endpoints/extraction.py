from fastapi import APIRouter, Depends, Request, status

from app.api.deps import get_container
from app.core.rate_limiting import limiter, submit_rate_limit
from app.schemas.job import ExtractAudioRequest, ExtractAudioResponse
from app.services.container import ServiceContainer

router = APIRouter()


@router.post("/extract-audio", status_code=status.HTTP_202_ACCEPTED, response_model=ExtractAudioResponse)
@limiter.limit(submit_rate_limit)
async def extract_audio(
    request: Request,
    payload: ExtractAudioRequest,
    container: ServiceContainer = Depends(get_container)
):
    """
    Submit a video URL for audio extraction.

    The job runs in the background; poll the returned statusUrl.
    """
    submission = await container.orchestrator.submit(
        payload.source,
        backend=payload.backend,
        strict_remote=payload.strictRemote
    )
    job = submission.job
    prefix = container.settings.API_V1_STR

    if submission.external_processing:
        message = "Audio extraction job delegated to processing service"
    elif submission.fallback:
        message = "Processing service unavailable, audio extraction queued locally"
    else:
        message = "Audio extraction job queued successfully"

    return ExtractAudioResponse(
        jobId=job.id,
        status=job.status.value,
        message=message,
        statusUrl=f"{prefix}/status/{job.id}",
        downloadUrl=f"{prefix}/download/{job.id}",
        backend=job.backend.value,
        externalProcessing=submission.external_processing,
        fallback=submission.fallback
    )
