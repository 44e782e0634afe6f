# Tableau Connection Manager MCP Server
# File: errors.py
# Version: v1

"""Exception types raised by the Tableau REST client layer.

Only failures that are fatal to the current operation are raised. The
per-asset connection query and the per-connection update deliberately
convert failures into empty results / failed outcomes instead.
"""

from __future__ import annotations

import re
from typing import Optional

_SNIPPET_LIMIT = 500

_SECRET_KEYS = r"(?:token|password|personalAccessTokenSecret)"

_JSON_SECRET = re.compile(r'("' + _SECRET_KEYS + r'"\s*:\s*)"(?:[^"\\]|\\.)*"')
_XML_SECRET = re.compile(r"\b(" + _SECRET_KEYS + r'\s*=\s*)"[^"]*"')
_AUTH_HEADER = re.compile(r"(X-Tableau-Auth\s*[:=]\s*)\S+", re.IGNORECASE)


def redact_body(text: Optional[str]) -> str:
    """Mask credential values in an upstream JSON or XML response body."""
    if not text:
        return ""
    redacted = _JSON_SECRET.sub(r'\1"***"', text)
    redacted = _XML_SECRET.sub(r'\1"***"', redacted)
    return _AUTH_HEADER.sub(r"\1***", redacted)


class TableauClientError(RuntimeError):
    """Base exception for Tableau client errors.

    ``status_code`` and ``body`` keep the raw upstream diagnosis; the
    string form only ever contains a redacted, truncated snippet.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.body = body

        parts = [message]
        if status_code is not None:
            parts.append(f"(HTTP {status_code})")
        if body:
            parts.append(f"Response snippet: {redact_body(body)[:_SNIPPET_LIMIT]}")
        super().__init__(" ".join(parts))


class AuthenticationError(TableauClientError):
    """Sign-in or sign-out was rejected or could not be sent."""


class ProtocolError(TableauClientError):
    """A successful response did not contain the expected fields."""


class EnumerationError(TableauClientError):
    """Listing data sources or workbooks failed."""
