from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.api.deps import get_container, get_orchestrator
from app.models.job import JobStatus
from app.schemas.job import JobStatusResponse
from app.services.container import ServiceContainer
from app.services.jobs.orchestrator import JobOrchestrator

router = APIRouter()

STATUS_CODES = {
    JobStatus.QUEUED: status.HTTP_202_ACCEPTED,
    JobStatus.PROCESSING: status.HTTP_202_ACCEPTED,
    JobStatus.COMPLETED: status.HTTP_200_OK,
    JobStatus.FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    container: ServiceContainer = Depends(get_container)
):
    """
    Get the status of an audio extraction job
    """
    job = container.orchestrator.get_job(job_id)
    response = JobStatusResponse.from_job(job, container.settings.API_V1_STR)

    return JSONResponse(
        status_code=STATUS_CODES[job.status],
        content=response.model_dump(mode="json", exclude_none=True)
    )


@router.get("/download/{job_id}")
async def download_audio(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator)
):
    """
    Stream the extracted audio of a completed job
    """
    body = await orchestrator.open_result(job_id)

    headers = {
        "Content-Disposition": f'attachment; filename="audio_{job_id}.mp3"',
        "X-Job-ID": job_id,
        "Cache-Control": "no-cache",
    }
    content_length = body.headers.get("Content-Length")
    if content_length:
        headers["Content-Length"] = content_length

    return StreamingResponse(body.chunks, media_type="audio/mpeg", headers=headers)


@router.delete("/jobs/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator)
):
    """
    Remove a job record
    """
    orchestrator.delete_job(job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
