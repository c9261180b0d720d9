"""X-API-Key guard for the proxy's own endpoints.

The ``Authorization`` header is not used here: LINE routes forward it to the
LINE API as the caller's channel access token.
"""

from __future__ import annotations

import secrets

import structlog
from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader

logger = structlog.get_logger()

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str | None:
    """Reject the request unless it carries the configured proxy key.

    An empty ``api_key`` in config disables the check.
    """
    expected = request.app.state.config.api_key
    if not expected:
        return None

    if not api_key:
        logger.warning("auth.missing_key", path=request.url.path, client=_client_host(request))
        raise HTTPException(status_code=401, detail="Missing API key. Provide X-API-Key header.")

    if not secrets.compare_digest(api_key.encode(), expected.encode()):
        logger.warning("auth.invalid_key", path=request.url.path, client=_client_host(request))
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return api_key


def _client_host(request: Request) -> str | None:
    return request.client.host if request.client else None
