"""Pydantic request and response models."""

from .cache import (
    CacheStatsResponse,
    DeleteResponse,
    HotKeysResponse,
    KeyInspectionResponse,
    KeyListResponse,
    SetKeyRequest,
    SetKeyResponse,
    SuccessResponse,
    WarmupRequest,
    WarmupStatsResponse,
    WarmupStatusResponse,
)

__all__ = [
    "CacheStatsResponse",
    "DeleteResponse",
    "HotKeysResponse",
    "KeyInspectionResponse",
    "KeyListResponse",
    "SetKeyRequest",
    "SetKeyResponse",
    "SuccessResponse",
    "WarmupRequest",
    "WarmupStatsResponse",
    "WarmupStatusResponse",
]
