"""Broadcast a notification to every registered device."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from psh_server.exceptions import HistoryWriteError, InvalidEnvironmentError, NoRecipientsError, TransportError
from psh_server.models.notification import BroadcastOutcome, DispatchResult
from psh_server.services.payload_builder import build_delivery_metadata, build_payload

if TYPE_CHECKING:
    from psh_server.models.notification import (
        DeliveryMetadata,
        DeviceRecord,
        NotificationIntent,
        ProviderPayload,
    )
    from psh_server.services.environment_router import EnvironmentRouter
    from psh_server.services.repository import PushRepository

logger = logging.getLogger(__name__)

INVALID_ENVIRONMENT_MESSAGE = "invalid environment"


class BroadcastDispatcher:
    """Fans one intent out to all devices and collects per-device outcomes."""

    def __init__(
        self,
        repository: PushRepository,
        router: EnvironmentRouter,
        concurrency: int = 1,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            repository: Device enumeration and push history store
            router: Resolves each device's environment to a shared transport
            concurrency: Maximum in-flight sends per broadcast (1 = sequential)
        """
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.repository = repository
        self.router = router
        self.concurrency = concurrency

    async def broadcast(self, intent: NotificationIntent) -> BroadcastOutcome:
        """
        Send an intent to every registered device.

        Per-device failures never abort the batch; they are returned in-band.

        Args:
            intent: Decoded notification intent

        Returns:
            BroadcastOutcome whose results follow device enumeration order

        Raises:
            StorageUnavailableError: If devices cannot be enumerated
            NoRecipientsError: If no devices are registered
        """
        devices = await self.repository.list_devices()

        if not devices:
            logger.warning("No devices registered, nothing to send")
            raise NoRecipientsError()

        logger.info("Found devices to notify", extra={"device_count": len(devices)})

        payload = build_payload(intent)
        metadata = build_delivery_metadata(intent)
        history_payload = json.dumps(intent.custom_data)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(device: DeviceRecord) -> DispatchResult:
            async with semaphore:
                return await self._dispatch_one(device, intent, payload, metadata, history_payload)

        results = await asyncio.gather(*(bounded(device) for device in devices))
        outcome = BroadcastOutcome.from_results(list(results))

        logger.info(
            "Send complete",
            extra={"sent": outcome.sent, "failed": outcome.failed},
        )
        return outcome

    async def _dispatch_one(
        self,
        device: DeviceRecord,
        intent: NotificationIntent,
        payload: ProviderPayload,
        metadata: DeliveryMetadata,
        history_payload: str,
    ) -> DispatchResult:
        token_suffix = device.device_token[-6:]

        try:
            transport = self.router.resolve(device)
        except InvalidEnvironmentError:
            logger.error(
                "Invalid environment in database",
                extra={"token_suffix": token_suffix, "environment": device.environment},
            )
            return DispatchResult.failed(device.device_token, INVALID_ENVIRONMENT_MESSAGE)

        try:
            apns_id = await transport.send(device.device_token, payload, metadata)
        except TransportError as e:
            logger.error(
                "Push failed",
                extra={
                    "token_suffix": token_suffix,
                    "error": e.message,
                    "endpoint": e.context.get("endpoint"),
                },
            )
            return DispatchResult.failed(device.device_token, e.message)
        except Exception as e:
            logger.exception(
                "Push failed",
                extra={"token_suffix": token_suffix, "error_type": type(e).__name__},
            )
            return DispatchResult.failed(device.device_token, str(e))

        logger.info("Push sent", extra={"token_suffix": token_suffix, "apns_id": apns_id})

        try:
            await self.repository.record_push(
                device_token=device.device_token,
                apns_id=apns_id,
                title=intent.title,
                body=intent.body,
                payload=history_payload,
            )
        except HistoryWriteError as e:
            logger.warning(
                "Failed to record push history",
                extra={"token_suffix": token_suffix, "error": e.message},
            )

        return DispatchResult.sent(device.device_token, apns_id)
