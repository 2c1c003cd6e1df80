"""Error taxonomy for webhook delivery.

Only ``ConfigurationError`` (from the manual test-send) and the terminal
``failed`` state ever reach a user. Network and HTTP errors are retried by
the executor; ``ExhaustedRetries`` turns a delivery into ``failed``.
"""
from typing import Optional


class WebhookError(Exception):
    """Base class for webhook delivery errors."""


class ConfigurationError(WebhookError):
    """The business has no webhook URL or secret configured."""


class NetworkError(WebhookError):
    """Timeout or connection failure while sending."""


class HTTPError(WebhookError):
    """The endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class ExhaustedRetries(WebhookError):
    """No retry tier is left for this delivery."""

    def __init__(self, attempts: int):
        super().__init__(f"Gave up after {attempts} attempt(s)")
        self.attempts = attempts
