"""Authentication helpers and FastAPI security dependency.

`get_current_student_id` extracts the bearer token, verifies it with the
configured secret and returns the authenticated student id. A missing or
non-bearer `Authorization` header answers 401; a token that does not
verify answers 403, without telling the caller whether the resource it
asked for exists.
"""

import logging

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .tokens import AuthError, verify_token

logger = logging.getLogger("tracker.auth")

bearer_scheme = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str:
    """Best known address of the caller, honouring `REAL_IP_HEADER` behind a proxy."""
    if settings.REAL_IP_HEADER:
        forwarded = request.headers.get(settings.REAL_IP_HEADER)
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_current_student_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> int:
    """FastAPI dependency returning the id of the logged in student."""
    if credentials is None:
        raise HTTPException(status_code=401, detail='missing bearer token')
    try:
        return verify_token(credentials.credentials, settings.APP_SECRET)
    except AuthError as exc:
        logger.warning(
            "request with invalid authentication from %s to %s: %s",
            client_ip(request), request.url.path, exc,
        )
        raise HTTPException(status_code=403, detail='invalid token')
