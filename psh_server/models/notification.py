"""Notification intent, provider payload and dispatch result types."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Reserved top-level key of the APNs payload; custom data never replaces it.
ENVELOPE_KEY = "aps"

# Any of these present in an intent produces an alert dictionary.
ALERT_TRIGGER_FIELDS = (
    "title",
    "subtitle",
    "body",
    "launch_image",
    "title_loc_key",
    "loc_key",
)


class SimpleSound(BaseModel):
    """Named sound file, serialized as a bare string."""

    kind: Literal["simple"] = "simple"
    name: str


class CriticalSound(BaseModel):
    """Critical alert sound, serialized as a sound dictionary."""

    kind: Literal["critical"] = "critical"
    name: str | None = None
    critical: bool | None = None
    volume: float | None = None


Sound = Annotated[SimpleSound | CriticalSound, Field(discriminator="kind")]


class NotificationIntent(BaseModel):
    """Provider-agnostic description of a notification to broadcast."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Alert
    title: str | None = None
    subtitle: str | None = None
    body: str | None = None
    launch_image: str | None = None

    # Localization
    title_loc_key: str | None = None
    title_loc_args: list[str] | None = None
    loc_key: str | None = None
    loc_args: list[str] | None = None

    # Badge & sound
    badge: int | None = Field(None, ge=0)
    sound: Sound | None = None

    # Behavior
    content_available: bool | None = None
    mutable_content: bool | None = None
    category: str | None = None
    interruption_level: str | None = None
    relevance_score: float | None = None

    # Delivery (transport headers, not part of the payload body)
    priority: int | None = Field(None, ge=0, le=255)
    collapse_id: str | None = None
    expiration: int | None = Field(None, ge=0)

    custom_data: dict[str, Any] | None = Field(None, alias="data")

    @field_validator("sound", mode="before")
    @classmethod
    def tag_sound_variant(cls, value: Any) -> Any:
        """Accept a bare string or an untagged sound object from the wire."""
        if isinstance(value, str):
            return {"kind": "simple", "name": value}
        if isinstance(value, dict) and "kind" not in value:
            return {**value, "kind": "critical"}
        return value

    @classmethod
    def from_text(cls, text: str) -> NotificationIntent:
        """Build a body-only intent from a plain-text request body."""
        return cls(body=text or None)

    def has_alert(self) -> bool:
        return any(getattr(self, name) is not None for name in ALERT_TRIGGER_FIELDS)


class ApsAlert(BaseModel):
    """The `alert` dictionary inside the APNs envelope."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    subtitle: str | None = None
    body: str | None = None
    launch_image: str | None = Field(None, alias="launch-image")
    title_loc_key: str | None = Field(None, alias="title-loc-key")
    title_loc_args: list[str] | None = Field(None, alias="title-loc-args")
    loc_key: str | None = Field(None, alias="loc-key")
    loc_args: list[str] | None = Field(None, alias="loc-args")


class Aps(BaseModel):
    """The APNs envelope (`aps` dictionary)."""

    model_config = ConfigDict(populate_by_name=True)

    alert: ApsAlert | None = None
    badge: int | None = None
    sound: str | dict[str, Any] | None = None
    content_available: Literal[1] | None = Field(None, alias="content-available")
    mutable_content: Literal[1] | None = Field(None, alias="mutable-content")
    category: str | None = None
    interruption_level: str | None = Field(None, alias="interruption-level")
    relevance_score: float | None = Field(None, alias="relevance-score")


@dataclass(frozen=True)
class ProviderPayload:
    """Wire-ready payload: the envelope plus custom data at the root."""

    aps: dict[str, Any]
    custom_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload = {key: value for key, value in self.custom_data.items() if key != ENVELOPE_KEY}
        payload[ENVELOPE_KEY] = self.aps
        return copy.deepcopy(payload)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))


@dataclass(frozen=True)
class DeliveryMetadata:
    """Transport-level options sent as APNs request headers."""

    priority: Literal["high", "normal"] | None = None
    collapse_id: str | None = None
    expiration: int | None = None
    push_type: Literal["alert", "background"] = "alert"


@dataclass(frozen=True)
class DeviceRecord:
    """A registered device as seen by the dispatcher."""

    device_token: str
    environment: str


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of sending to a single device."""

    device_token: str
    success: bool
    provider_id: str | None = None
    error: str | None = None

    @classmethod
    def sent(cls, device_token: str, provider_id: str) -> DispatchResult:
        return cls(device_token=device_token, success=True, provider_id=provider_id)

    @classmethod
    def failed(cls, device_token: str, error: str) -> DispatchResult:
        return cls(device_token=device_token, success=False, error=error)


@dataclass(frozen=True)
class BroadcastOutcome:
    """Aggregate result of one broadcast, in device enumeration order."""

    sent: int
    failed: int
    results: tuple[DispatchResult, ...]

    @property
    def success(self) -> bool:
        """A broadcast succeeds when at least one device was reached."""
        return self.sent > 0

    @classmethod
    def from_results(cls, results: list[DispatchResult]) -> BroadcastOutcome:
        sent = sum(1 for result in results if result.success)
        return cls(sent=sent, failed=len(results) - sent, results=tuple(results))
