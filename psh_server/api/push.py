"""Push relay API endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError

from psh_server.dependencies import get_dispatcher, get_repository, verify_token
from psh_server.exceptions import NoRecipientsError, StorageUnavailableError
from psh_server.models.notification import NotificationIntent
from psh_server.models.push import (
    DeviceSendResult,
    ErrorResponse,
    PushDetailRecord,
    PushesResponse,
    RegisterRequest,
    RegisterResponse,
    SendResponse,
    StatsResponse,
)
from psh_server.services.dispatcher import BroadcastDispatcher
from psh_server.services.repository import PushRepository
from psh_server.version import get_version

if TYPE_CHECKING:
    from psh_server.models.notification import BroadcastOutcome

logger = logging.getLogger(__name__)
router = APIRouter()


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(),
    )


def decode_intent(body: bytes, content_type: str | None) -> NotificationIntent:
    """
    Decode a send request body.

    JSON bodies are parsed as a full intent; anything else is treated as the
    notification body text.

    Raises:
        ValidationError: If a JSON body is malformed or has invalid fields
    """
    if content_type and "application/json" in content_type:
        return NotificationIntent.model_validate_json(body)
    return NotificationIntent.from_text(body.decode("utf-8", errors="replace"))


def to_send_response(outcome: BroadcastOutcome) -> SendResponse:
    return SendResponse(
        success=outcome.success,
        sent=outcome.sent,
        failed=outcome.failed,
        results=[
            DeviceSendResult(
                device_token=result.device_token,
                success=result.success,
                apns_id=result.provider_id,
                error=result.error,
            )
            for result in outcome.results
        ],
    )


@router.get("/", response_class=PlainTextResponse)
async def index() -> str:
    return f"OK {get_version()}"


@router.post("/register", response_model=RegisterResponse)
async def register_device(
    request: RegisterRequest,
    repository: PushRepository = Depends(get_repository),
    _: None = Depends(verify_token),
) -> RegisterResponse | JSONResponse:
    """Register a device token, or refresh its metadata if already known."""
    try:
        await repository.upsert_device(
            device_token=request.device_token,
            installation_id=request.installation_id,
            environment=request.environment,
            device_name=request.device_name,
            device_type=request.device_type,
            os_version=request.os_version,
            app_version=request.app_version,
        )
    except StorageUnavailableError as e:
        logger.error(
            "Failed to register device",
            extra={"installation_id": request.installation_id, "error": e.message},
        )
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message)

    return RegisterResponse(success=True, message="Device registered successfully")


@router.post("/send", response_model=SendResponse)
async def send_notification(
    request: Request,
    dispatcher: BroadcastDispatcher = Depends(get_dispatcher),
    _: None = Depends(verify_token),
) -> SendResponse | JSONResponse:
    """
    Broadcast a notification to every registered device.

    Accepts a JSON intent, or a plain-text body used as the notification body.
    """
    body = await request.body()
    content_type = request.headers.get("content-type")

    logger.info(
        "Received send request",
        extra={"is_json": bool(content_type and "application/json" in content_type), "body_len": len(body)},
    )

    try:
        intent = decode_intent(body, content_type)
    except ValidationError as e:
        logger.warning("Invalid JSON in send request", extra={"error_count": e.error_count()})
        return error_response(status.HTTP_400_BAD_REQUEST, f"Invalid JSON: {e}")

    try:
        outcome = await dispatcher.broadcast(intent)
    except NoRecipientsError as e:
        return error_response(status.HTTP_404_NOT_FOUND, e.message)
    except StorageUnavailableError as e:
        logger.error("Database error fetching devices", extra={"error": e.message})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message)

    return to_send_response(outcome)


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    repository: PushRepository = Depends(get_repository),
    _: None = Depends(verify_token),
) -> StatsResponse | JSONResponse:
    """Registered device counts per environment and total pushes sent."""
    try:
        return await repository.stats()
    except StorageUnavailableError as e:
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message)


@router.get("/pushes", response_model=PushesResponse)
async def get_pushes(
    installation_id: str,
    repository: PushRepository = Depends(get_repository),
    _: None = Depends(verify_token),
) -> PushesResponse | JSONResponse:
    """Push history for an installation, newest first."""
    try:
        pushes = await repository.list_pushes(installation_id)
    except StorageUnavailableError as e:
        logger.error("Database error fetching pushes", extra={"error": e.message})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message)

    logger.debug("Returning pushes", extra={"count": len(pushes)})
    return PushesResponse(pushes=pushes)


@router.get("/pushes/{push_id}", response_model=PushDetailRecord)
async def get_push_detail(
    push_id: int,
    repository: PushRepository = Depends(get_repository),
    _: None = Depends(verify_token),
) -> PushDetailRecord | JSONResponse:
    """A single push with the device it was sent to."""
    try:
        push = await repository.get_push(push_id)
    except StorageUnavailableError as e:
        logger.error("Database error fetching push detail", extra={"push_id": push_id, "error": e.message})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, e.message)

    if push is None:
        logger.warning("Push not found", extra={"push_id": push_id})
        return error_response(status.HTTP_404_NOT_FOUND, "Push not found")

    return push
