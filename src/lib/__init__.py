"""Library utilities for the Scrape Worker."""

from .pii_redactor import PIIRedactor
from .json_logger import (
    JSONFormatter,
    StructuredLoggerAdapter,
    setup_json_logging,
    setup_logging,
    get_structured_logger,
    request_logger,
)
from .rate_limiter import SlidingWindowRateLimiter
from .auth import Authenticator, SupabaseAuthenticator, bearer_token

__all__ = [
    # PII
    "PIIRedactor",
    # JSON logging
    "JSONFormatter",
    "StructuredLoggerAdapter",
    "setup_json_logging",
    "setup_logging",
    "get_structured_logger",
    "request_logger",
    # Rate limiting
    "SlidingWindowRateLimiter",
    # Auth
    "Authenticator",
    "SupabaseAuthenticator",
    "bearer_token",
]
