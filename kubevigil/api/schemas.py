"""Pydantic response models for the kubevigil REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    error: str
    detail: str


class HealthResponse(BaseModel):
    status: str
    version: str


class ReadinessResponse(BaseModel):
    ready: bool
    notifiers: int
    rules: int


class AlertView(BaseModel):
    key: str
    resource_kind: str
    resource_name: str
    status: str
    severity: str
    message: str
    suppressed: bool = False
    error: str = ""


class NotifierView(BaseModel):
    name: str
    channels: list[str] = Field(default_factory=list)
    notify_interval: int
    checked_at: str | None = None
    alerts: list[AlertView] = Field(default_factory=list)


class RuleView(BaseModel):
    kind: str
    name: str
    namespace: str = ""
    ready: bool
    notifiers: list[str] = Field(default_factory=list)
    checked_at: str | None = None
    violations: dict[str, str] = Field(default_factory=dict)
