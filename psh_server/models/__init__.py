"""Models for the psh relay."""

from psh_server.models.notification import (
    BroadcastOutcome,
    CriticalSound,
    DeliveryMetadata,
    DeviceRecord,
    DispatchResult,
    NotificationIntent,
    ProviderPayload,
    SimpleSound,
)
from psh_server.models.push import (
    DeviceSendResult,
    ErrorResponse,
    PushDetailRecord,
    PushesResponse,
    PushRecord,
    RegisterRequest,
    RegisterResponse,
    SendResponse,
    StatsResponse,
)

__all__ = [
    "BroadcastOutcome",
    "CriticalSound",
    "DeliveryMetadata",
    "DeviceRecord",
    "DeviceSendResult",
    "DispatchResult",
    "ErrorResponse",
    "NotificationIntent",
    "ProviderPayload",
    "PushDetailRecord",
    "PushRecord",
    "PushesResponse",
    "RegisterRequest",
    "RegisterResponse",
    "SendResponse",
    "SimpleSound",
    "StatsResponse",
]
