"""Request/response models for the push relay API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Device registration request sent by the app on launch."""

    device_token: str = Field(..., min_length=1, description="APNs device token")
    installation_id: str = Field(..., min_length=1, description="Per-install UUID from the app")
    environment: Literal["sandbox", "production"] = Field(..., description="APNs environment")
    device_name: str | None = Field(None, description="Optional human-readable device name")
    device_type: str | None = Field(None, description="Device model family")
    os_version: str | None = Field(None, description="Operating system version")
    app_version: str | None = Field(None, description="App version string")


class RegisterResponse(BaseModel):
    """Device registration response."""

    success: bool
    message: str


class DeviceSendResult(BaseModel):
    """Result for a single device notification."""

    device_token: str = Field(..., description="Device token the send targeted")
    success: bool = Field(..., description="Whether APNs accepted the notification")
    apns_id: str | None = Field(None, description="APNs-assigned notification id")
    error: str | None = Field(None, description="Error message if failed")


class SendResponse(BaseModel):
    """Broadcast response."""

    success: bool = Field(..., description="True when at least one device was reached")
    sent: int = Field(..., description="Number of successful sends")
    failed: int = Field(..., description="Number of failed sends")
    results: list[DeviceSendResult] = Field(..., description="Per-device results in registry order")


class ErrorResponse(BaseModel):
    """Error body returned for batch-level failures."""

    success: bool = False
    error: str


class StatsResponse(BaseModel):
    """Registry and history counts."""

    total_devices: int
    sandbox_devices: int
    production_devices: int
    total_pushes: int


class PushRecord(BaseModel):
    """A push history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    device_token: str
    apns_id: str | None = None
    title: str | None = None
    body: str | None = None
    payload: str | None = None
    sent_at: datetime


class PushesResponse(BaseModel):
    """Push history for one installation."""

    pushes: list[PushRecord]


class PushDetailRecord(BaseModel):
    """A push history entry joined with the device that received it."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    apns_id: str | None = None
    title: str | None = None
    body: str | None = None
    payload: str | None = None
    sent_at: datetime
    device_token: str
    device_name: str | None = None
    device_type: str | None = None
    environment: str | None = None
