from typing import Optional


class FluidError(Exception):
    """Base class for Fluid API integration errors."""


class FluidApiError(FluidError):
    """Raised when the Fluid API answers outside the 2xx range."""

    def __init__(self, status_code: int, reason: str, body: str, url: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason
        self.body = body
        self.url = url
        super().__init__(f"Fluid API Error: {status_code} {reason} - {body}")


class FluidResponseError(FluidError):
    """Raised when a Fluid payload does not have any of the expected shapes."""
