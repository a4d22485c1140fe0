"""
Job endpoints: submit text, documents and voice notes; inspect job history.
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import MAX_UPLOAD_BYTES
from app.database import get_db
from app.dependencies import get_admission_service
from app.models import JobRecord, JobStatus
from app.schemas.job import JobCreate, JobAccepted, JobResponse, JobListResponse
from app.services.admission import Admission, AdmissionService
from app.services.errors import (
    SpeechJobError,
    RateLimitExceeded,
    EmptyTextError,
    UnsupportedFormatError,
    QueueUnavailableError,
)


router = APIRouter(prefix='/jobs', tags=['jobs'])

_ERROR_STATUS = [
    (RateLimitExceeded, 429),
    (EmptyTextError, 422),
    (UnsupportedFormatError, 415),
    (QueueUnavailableError, 503),
]


def _http_error(error: SpeechJobError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.user_message)
    return HTTPException(status_code=400, detail=error.user_message)


def _accepted(admission: Admission) -> JobAccepted:
    return JobAccepted(
        id=admission.job.id,
        kind=admission.job.kind,
        owner_id=admission.job.owner_id,
        status=JobStatus.enqueued.value,
        notice=admission.notice,
    )


async def _read_upload(file: UploadFile) -> bytes:
    data = await file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f'File too large. Maximum size is {MAX_UPLOAD_BYTES // (1024 * 1024)}MB.',
        )
    if not data:
        raise HTTPException(status_code=422, detail='Uploaded file is empty')
    return data


@router.get('', response_model=JobListResponse)
async def list_jobs(
    owner_id: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> JobListResponse:
    """
    List jobs with pagination, optionally for one owner.

    Returns jobs ordered by creation time (newest first).
    """
    count_query = select(func.count(JobRecord.id))
    query = select(JobRecord)
    if owner_id is not None:
        count_query = count_query.where(JobRecord.owner_id == owner_id)
        query = query.where(JobRecord.owner_id == owner_id)

    total = (await db.execute(count_query)).scalar()
    result = await db.execute(
        query.order_by(JobRecord.created_at.desc()).limit(limit).offset(offset)
    )
    jobs = result.scalars().all()

    return JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post('', response_model=JobAccepted, status_code=202)
async def create_job(
    job_data: JobCreate,
    admission: AdmissionService = Depends(get_admission_service),
) -> JobAccepted:
    """
    Submit text for speech synthesis.

    Returns as soon as the job is queued; the audio arrives in the owner's
    message inbox.
    """
    try:
        result = await admission.submit_text(job_data.owner_id, job_data.text, enhance=job_data.enhance)
    except SpeechJobError as e:
        raise _http_error(e)
    return _accepted(result)


@router.post('/document', response_model=JobAccepted, status_code=202)
async def create_document_job(
    owner_id: str = Form(..., min_length=1, max_length=100),
    file: UploadFile = File(...),
    admission: AdmissionService = Depends(get_admission_service),
) -> JobAccepted:
    """Submit a pdf, docx, txt or md document to be read aloud."""
    data = await _read_upload(file)
    try:
        result = await admission.submit_document(owner_id, data, file.filename or '', file.content_type)
    except SpeechJobError as e:
        raise _http_error(e)
    return _accepted(result)


@router.post('/voice', response_model=JobAccepted, status_code=202)
async def create_voice_job(
    owner_id: str = Form(..., min_length=1, max_length=100),
    file: UploadFile = File(...),
    admission: AdmissionService = Depends(get_admission_service),
) -> JobAccepted:
    """Submit a voice note to be transcribed, cleaned up and read back."""
    data = await _read_upload(file)
    try:
        result = await admission.submit_voice(owner_id, data, file.content_type)
    except SpeechJobError as e:
        raise _http_error(e)
    return _accepted(result)


@router.get('/{job_id}', response_model=JobResponse)
async def get_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Get status, timings and result size for a specific job."""
    result = await db.execute(select(JobRecord).where(JobRecord.id == job_id))
    job = result.scalar_one_or_none()

    if not job:
        raise HTTPException(status_code=404, detail=f'Job not found: {job_id}')

    return JobResponse.model_validate(job)
