# stage_sync/errors.py
from typing import Optional


class StageSyncError(Exception):
    pass


class ConfigError(StageSyncError):
    """Missing or invalid setting. Raised at startup only."""


class AuthError(StageSyncError):
    pass


class MalformedPayloadError(StageSyncError):
    pass


class UpstreamApiError(StageSyncError):
    """Non-2xx (or no response at all) from the Shopify Admin API."""

    def __init__(self, status: Optional[int], body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Shopify API error {status}: {body}")


ApiError = UpstreamApiError


class NotificationError(StageSyncError):
    def __init__(self, sink: str, detail: str):
        self.sink = sink
        self.detail = detail
        super().__init__(f"{sink} notification failed: {detail}")
