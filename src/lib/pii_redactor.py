"""PII and secret redaction utilities.

Removes sensitive data from caller-supplied URLs and error text before
it reaches the logs.
"""

import re
from typing import Optional


class PIIRedactor:
    """Redact PII and credentials from text before logging."""

    # Replaced with [NAME_REDACTED]
    PATTERNS = {
        'bearer_token': r'\bBearer\s+[\w\-.~+/]+=*',
        'email': r'\b[\w.-]+@[\w.-]+\.\w{2,}\b',
        'credit_card': r'\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b',
        'phone_intl': r'\b\+\d{1,3}\s?[\d\s/()-]{6,}\b',
    }

    # user:password@ inside a URL authority
    URL_CREDENTIALS = re.compile(r'(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s]+@', re.IGNORECASE)

    # Query parameters whose values are secrets
    SECRET_PARAMS = re.compile(
        r'(?P<key>[?&;](?:access_token|refresh_token|token|api_key|apikey|key|secret|'
        r'signature|sig|password|passwd|pwd|auth|code|session)=)[^&;#\s]*',
        re.IGNORECASE,
    )

    @classmethod
    def redact_url(cls, url: Optional[str]) -> str:
        """Mask userinfo and secret-looking query values in a URL."""
        if not url:
            return ""
        result = cls.URL_CREDENTIALS.sub(r'\g<scheme>[CREDENTIALS_REDACTED]@', url)
        return cls.SECRET_PARAMS.sub(r'\g<key>[REDACTED]', result)

    @classmethod
    def redact(cls, text: Optional[str]) -> str:
        """
        Redact PII from text.

        Args:
            text: Text to redact

        Returns:
            Redacted text with PII replaced by [TYPE_REDACTED]
        """
        if not text:
            return ""

        # URLs first, so an email-looking userinfo is reported as credentials
        result = cls.redact_url(text)
        for name, pattern in cls.PATTERNS.items():
            result = re.sub(pattern, f'[{name.upper()}_REDACTED]', result, flags=re.IGNORECASE)
        return result

    @classmethod
    def redact_for_logging(cls, text: Optional[str]) -> str:
        """Redact PII for logging purposes."""
        return cls.redact(text)

    @classmethod
    def contains_pii(cls, text: Optional[str]) -> bool:
        """Check if text contains any PII or credential patterns."""
        if not text:
            return False

        if cls.URL_CREDENTIALS.search(text) or cls.SECRET_PARAMS.search(text):
            return True
        for pattern in cls.PATTERNS.values():
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False
