"""Content generation API router.

REST endpoints for running the pipeline for one keyword, submitting
batches, reading batch progress and queue stats, and streaming batch
progress over Server-Sent Events.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, StreamingResponse

from getcare.api.v1.dependencies import get_pipeline, get_progress_stream, get_queue
from getcare.core.errors import NotFoundError, ValidationError
from getcare.core.logging import get_logger
from getcare.schemas.content import (
    BatchCreateRequest,
    BatchCreateResponse,
    BatchProgressResponse,
    GenerateContentRequest,
    PipelineResultResponse,
    QueueStatsResponse,
)
from getcare.services.content_pipeline import ContentPipeline, PipelineOptions
from getcare.services.generation_queue import GenerationQueue
from getcare.services.progress_stream import ProgressStream, is_worker_active

logger = get_logger(__name__)

router = APIRouter(prefix="/content", tags=["Content Generation"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.post(
    "/generate",
    response_model=PipelineResultResponse,
    responses={409: {"model": PipelineResultResponse}},
)
async def generate_content(
    data: GenerateContentRequest,
    pipeline: ContentPipeline = Depends(get_pipeline),
) -> Any:
    """Run the pipeline for one keyword and wait for the result.

    Returns 404 if the keyword does not exist.
    Returns 409 with the result body if the keyword is already generating.
    Returns 400 if the keyword cannot be generated (e.g. unsupported locale).
    Other failures return 200 with success=false and an error_category.
    """
    result = await pipeline.run(
        data.keyword_id,
        PipelineOptions(
            include_retrieval_context=data.include_retrieval_context,
            include_images=data.include_images,
            image_count=data.image_count,
            auto_publish=data.auto_publish,
        ),
    )

    if result.error_category == NotFoundError.category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    if result.error_category == ValidationError.category:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    if result.already_in_progress:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=PipelineResultResponse.model_validate(result.to_dict()).model_dump(),
        )
    return PipelineResultResponse.model_validate(result.to_dict())


@router.post(
    "/batch",
    response_model=BatchCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_batch(
    data: BatchCreateRequest,
    queue: GenerationQueue = Depends(get_queue),
) -> BatchCreateResponse:
    """Queue a batch of keywords for background generation.

    Returns 400 if the batch is too large or no keyword is eligible.
    """
    try:
        submission = await queue.add_batch(
            data.keyword_ids,
            priority=data.priority,
            requested_by=data.requested_by,
            auto_publish=data.auto_publish,
            include_images=data.include_images,
            image_count=data.image_count,
            notify_email=data.notify_email,
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message) from e

    return BatchCreateResponse(
        batch_id=submission.batch_id,
        total=submission.total,
        skipped=submission.skipped,  # type: ignore[arg-type]
    )


@router.get("/batch/{batch_id}", response_model=BatchProgressResponse)
async def get_batch_progress(
    batch_id: str,
    queue: GenerationQueue = Depends(get_queue),
) -> BatchProgressResponse:
    """Progress snapshot of a batch. Returns 404 if it does not exist."""
    try:
        progress = await queue.get_batch_progress(batch_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message) from e
    return BatchProgressResponse.model_validate(progress.to_dict())


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    queue: GenerationQueue = Depends(get_queue),
) -> QueueStatsResponse:
    """Job counts by status plus the number of running batches."""
    return QueueStatsResponse.model_validate(await queue.get_queue_stats())


@router.get("/status")
async def stream_status(
    batch_id: str = Query(..., min_length=1),
    start_worker: bool = Query(False),
    queue: GenerationQueue = Depends(get_queue),
    progress_stream: ProgressStream = Depends(get_progress_stream),
) -> StreamingResponse:
    """Stream batch progress as Server-Sent Events.

    With start_worker=true the stream also processes the batch's jobs.
    Returns 404 if the batch does not exist.
    Returns 409 if a worker is already streaming this batch.
    """
    try:
        await queue.get_batch_progress(batch_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message) from e

    if start_worker and is_worker_active(batch_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A worker is already processing this batch",
        )

    logger.info(
        "Progress stream opened",
        extra={"batch_id": batch_id, "start_worker": start_worker},
    )
    return StreamingResponse(
        progress_stream.stream(batch_id, start_worker=start_worker),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
