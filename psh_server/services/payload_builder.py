"""Translate a NotificationIntent into an APNs payload and delivery headers.

Everything here is pure: no I/O, no logging, and no input combination raises.
Absent intent fields are omitted from the payload rather than emitted as null.
"""

from __future__ import annotations

from typing import Any, Literal

from psh_server.models.notification import (
    Aps,
    ApsAlert,
    CriticalSound,
    DeliveryMetadata,
    NotificationIntent,
    ProviderPayload,
    SimpleSound,
)

DEFAULT_SOUND_NAME = "default"


def build_alert(intent: NotificationIntent) -> ApsAlert | None:
    """Return the alert section, or None when no alert field is set."""
    if not intent.has_alert():
        return None

    return ApsAlert(
        title=intent.title,
        subtitle=intent.subtitle,
        body=intent.body,
        launch_image=intent.launch_image,
        title_loc_key=intent.title_loc_key,
        title_loc_args=intent.title_loc_args,
        loc_key=intent.loc_key,
        loc_args=intent.loc_args,
    )


def build_sound(sound: SimpleSound | CriticalSound | None) -> str | dict[str, Any] | None:
    """
    Serialize the sound variant.

    Only a critical sound whose flag is true is sent as a critical alert; any
    other sound object degrades to a plain named sound.
    """
    if sound is None:
        return None

    name = sound.name or DEFAULT_SOUND_NAME

    if isinstance(sound, SimpleSound) or sound.critical is not True:
        return name

    critical: dict[str, Any] = {"critical": 1, "name": name}
    if sound.volume is not None:
        critical["volume"] = sound.volume
    return critical


def build_payload(intent: NotificationIntent) -> ProviderPayload:
    """
    Build the provider payload for a broadcast.

    The result does not depend on the target environment, so one payload is
    shared by every device in the batch.

    Args:
        intent: Decoded notification intent

    Returns:
        ProviderPayload with the `aps` envelope and root-level custom data
    """
    aps = Aps(
        alert=build_alert(intent),
        badge=intent.badge,
        sound=build_sound(intent.sound),
        content_available=1 if intent.content_available else None,
        mutable_content=1 if intent.mutable_content else None,
        category=intent.category,
        interruption_level=intent.interruption_level,
        relevance_score=intent.relevance_score,
    )

    return ProviderPayload(
        aps=aps.model_dump(by_alias=True, exclude_none=True),
        custom_data=dict(intent.custom_data or {}),
    )


def map_priority(priority: int | None) -> Literal["high", "normal"] | None:
    """Map the 1-10 intent priority onto APNs delivery priority."""
    if priority is None:
        return None
    return "normal" if 1 <= priority <= 5 else "high"


def build_delivery_metadata(intent: NotificationIntent) -> DeliveryMetadata:
    """Extract the header-level delivery options from an intent."""
    return DeliveryMetadata(
        priority=map_priority(intent.priority),
        collapse_id=intent.collapse_id,
        expiration=intent.expiration,
        push_type="background" if intent.content_available else "alert",
    )
