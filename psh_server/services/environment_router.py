"""Route devices to the APNs endpoint matching their registered environment."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from psh_server.exceptions import InvalidEnvironmentError

if TYPE_CHECKING:
    from psh_server.models.notification import DeviceRecord
    from psh_server.services.apns_transport import APNsTransport


class Environment(str, Enum):
    """APNs environment a device registered under."""

    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, value: str) -> Environment:
        try:
            return cls(value)
        except ValueError:
            raise InvalidEnvironmentError(
                "invalid environment",
                context={"environment": value},
            ) from None


class EnvironmentRouter:
    """Holds the two shared transports, built once at startup."""

    def __init__(self, sandbox: APNsTransport, production: APNsTransport) -> None:
        self._transports = {
            Environment.SANDBOX: sandbox,
            Environment.PRODUCTION: production,
        }

    def resolve(self, device: DeviceRecord) -> APNsTransport:
        """
        Return the transport for a device.

        Raises:
            InvalidEnvironmentError: If the stored tag is not a known environment
        """
        return self._transports[Environment.parse(device.environment)]

    def environments(self) -> list[Environment]:
        return list(self._transports)
