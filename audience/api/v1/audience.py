"""Public audience ingestion endpoints (called from creator profile pages)."""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from audience.core.deps import Recorder
from audience.core.errors import (
    ForbiddenError,
    InternalPipelineError,
    NotFoundError,
    ValidationError,
)
from audience.core.rate_limit import get_client_ip, ingestion_rate_limit, limiter
from audience.schemas.audience import (
    ClickRequest,
    IdentifyRequest,
    IngestionErrorResponse,
    IngestionResponse,
    VisitRequest,
)
from audience.services.interaction import RecordFailure, RecordResult

router = APIRouter()

NO_STORE_HEADERS = {"Cache-Control": "no-store"}
RETRY_AFTER_SECONDS = "1"
RETRYABLE_MESSAGE = "Unable to record interaction, please retry"


def _status_for(failure: RecordFailure) -> int:
    error = failure.error
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, ForbiddenError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, InternalPipelineError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_503_SERVICE_UNAVAILABLE


def _to_response(result: RecordResult) -> JSONResponse:
    """Map a pipeline result onto an HTTP response."""
    if isinstance(result, RecordFailure):
        headers = dict(NO_STORE_HEADERS)
        if result.retryable:
            headers["Retry-After"] = RETRY_AFTER_SECONDS
        body = IngestionErrorResponse(
            # Retryable failures originate below the service boundary
            error=RETRYABLE_MESSAGE if result.retryable else result.error.message,
            code=result.error.code,
            retryable=result.retryable,
        )
        return JSONResponse(
            status_code=_status_for(result),
            content=body.model_dump(),
            headers=headers,
        )

    body_ok = IngestionResponse(
        fingerprint=result.fingerprint,
        audience_member_id=result.audience_member_id,
    )
    return JSONResponse(content=body_ok.model_dump(mode="json"), headers=NO_STORE_HEADERS)


@router.post("/click", response_model=IngestionResponse)
@limiter.limit(ingestion_rate_limit)
async def record_click(
    request: Request,
    payload: ClickRequest,
    recorder: Recorder,
) -> JSONResponse:
    """Record a click on a creator profile and update the visitor's engagement."""
    result = await recorder.record_click(
        payload,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _to_response(result)


@router.post("/visit", response_model=IngestionResponse)
@limiter.limit(ingestion_rate_limit)
async def record_visit(
    request: Request,
    payload: VisitRequest,
    recorder: Recorder,
) -> JSONResponse:
    """Count a profile visit for the visitor."""
    result = await recorder.record_visit(
        payload,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _to_response(result)


@router.post("/identify", response_model=IngestionResponse)
@limiter.limit(ingestion_rate_limit)
async def identify(
    request: Request,
    payload: IdentifyRequest,
    recorder: Recorder,
) -> JSONResponse:
    """Attach a notification sign-up's contact details to the visitor."""
    result = await recorder.identify_member(
        payload,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _to_response(result)
