"""Apple Push Notification transport."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from aioapns import APNs, NotificationRequest
from aioapns.common import PushType

from psh_server.exceptions import ConfigurationError, TransportError

if TYPE_CHECKING:
    from psh_server.models.notification import DeliveryMetadata, ProviderPayload

logger = logging.getLogger(__name__)

# APNs rejects apns-collapse-id headers larger than this.
MAX_COLLAPSE_ID_BYTES = 64

APNS_PRIORITY = {"high": 10, "normal": 5}

PUSH_TYPES = {"alert": PushType.ALERT, "background": PushType.BACKGROUND}


def collapse_key(collapse_id: str | None) -> str | None:
    """Return the collapse id if APNs will accept it, otherwise None."""
    if collapse_id is None:
        return None
    if len(collapse_id.encode("utf-8")) > MAX_COLLAPSE_ID_BYTES:
        logger.debug(
            "Dropping oversized collapse id",
            extra={"collapse_id_bytes": len(collapse_id.encode("utf-8"))},
        )
        return None
    return collapse_id


def time_to_live(expiration: int | None, now: float | None = None) -> int | None:
    """
    Convert an absolute expiration timestamp to seconds from now.

    aioapns only accepts a time-to-live and sends `apns-expiration` as now plus
    that value, so an expiration of 0 (deliver once, do not store) goes out as
    the current time. APNs treats both as already expired: one delivery
    attempt, no storage.
    """
    if expiration is None:
        return None
    if expiration == 0:
        return 0
    current = int(time.time() if now is None else now)
    return max(expiration - current, 0)


class APNsTransport:
    """One long-lived APNs connection pool bound to a single endpoint."""

    def __init__(
        self,
        key_content: str,
        key_id: str,
        team_id: str,
        topic: str,
        use_sandbox: bool,
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize the APNs client.

        Args:
            key_content: Apple P8 key content (not file path)
            key_id: Apple Key ID
            team_id: Apple Team ID
            topic: Bundle ID used as apns-topic
            use_sandbox: Address the development endpoint instead of production
            timeout_seconds: Upper bound for a single send

        Raises:
            ConfigurationError: If credentials are empty or rejected by the client
        """
        self.topic = topic
        self.use_sandbox = use_sandbox
        self.timeout_seconds = timeout_seconds

        if not key_content or not key_content.strip():
            msg = "APNs key content is empty"
            logger.error(msg)
            raise ConfigurationError(msg)

        try:
            self.client = APNs(
                key=key_content,
                key_id=key_id,
                team_id=team_id,
                topic=topic,
                use_sandbox=use_sandbox,
            )
        except Exception as e:
            msg = f"Failed to initialize APNs client: {e}"
            logger.error(msg)
            raise ConfigurationError(msg, context={"use_sandbox": use_sandbox}) from e

        logger.info(
            "APNs client initialized: team_id=%s, key_id=%s, sandbox=%s",
            team_id,
            key_id,
            use_sandbox,
        )

    @property
    def endpoint(self) -> str:
        return "sandbox" if self.use_sandbox else "production"

    def build_request(
        self,
        device_token: str,
        payload: ProviderPayload,
        metadata: DeliveryMetadata,
    ) -> NotificationRequest:
        """Assemble the aioapns request for one device."""
        return NotificationRequest(
            device_token=device_token,
            message=payload.to_dict(),
            time_to_live=time_to_live(metadata.expiration),
            priority=APNS_PRIORITY.get(metadata.priority) if metadata.priority else None,
            collapse_key=collapse_key(metadata.collapse_id),
            push_type=PUSH_TYPES[metadata.push_type],
        )

    async def send(
        self,
        device_token: str,
        payload: ProviderPayload,
        metadata: DeliveryMetadata,
    ) -> str:
        """
        Send a payload to one device.

        Args:
            device_token: APNs device token
            payload: Shared broadcast payload
            metadata: Header-level delivery options

        Returns:
            The apns-id assigned to the notification

        Raises:
            TransportError: If APNs rejects the notification, the connection
                fails, or the call exceeds the configured timeout
        """
        request = self.build_request(device_token, payload, metadata)

        try:
            result = await asyncio.wait_for(
                self.client.send_notification(request),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as e:
            msg = f"APNs request timed out after {self.timeout_seconds:g}s"
            raise TransportError(msg, context={"endpoint": self.endpoint}) from e
        except Exception as e:
            raise TransportError(str(e), context={"endpoint": self.endpoint}) from e

        if not result.is_successful:
            msg = f"{result.status}: {result.description}"
            raise TransportError(
                msg,
                context={"endpoint": self.endpoint, "status": result.status},
            )

        logger.debug(
            "APNs accepted notification",
            extra={"token_suffix": device_token[-6:], "endpoint": self.endpoint},
        )
        return result.notification_id or ""
