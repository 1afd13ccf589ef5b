# pharmacheck/infra/api/security.py
import hmac
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security.api_key import APIKeyHeader

log = logging.getLogger("pharmacheck.api")

API_KEY_NAME = "X-Api-Key"
_api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


async def require_api_key(request: Request, api_key: str = Depends(_api_key_header)):
    settings = request.app.state.container.settings
    if not settings.require_api_key:
        return
    if not settings.service_api_key:
        log.warning("Auth fail: REQUIRE_API_KEY set but SERVICE_API_KEY missing")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service key not configured")
    if not api_key or not hmac.compare_digest(api_key, settings.service_api_key):
        log.warning("Auth fail: invalid %s on %s", API_KEY_NAME, request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
