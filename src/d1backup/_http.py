"""Small HTTP-related constants shared across d1backup.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

API_ENDPOINT = "https://api.cloudflare.com/client/v4"

# Statuses a caller may reasonably retry; surfaced on TransportFailure only.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

DEFAULT_TIMEOUT_S = 30.0
