import secrets
from typing import Optional

from fastapi import HTTPException, Query, Request, Security
from fastapi.security import APIKeyHeader
from starlette import status

admin_header = APIKeyHeader(name="X-Admin-Password", auto_error=False)


def password_matches(configured: str, candidate: Optional[str]) -> bool:
    """Constant-time comparison; an unset password matches nothing."""
    if not configured or candidate is None:
        return False
    return secrets.compare_digest(configured.encode("utf-8"), candidate.encode("utf-8"))


async def require_admin(
    request: Request,
    header_password: Optional[str] = Security(admin_header),
    password: Optional[str] = Query(None, description="Admin password, for clients that cannot set headers."),
) -> None:
    """Validate that the caller provides the shared admin password."""
    configured = request.app.state.context.settings.admin_password
    if not password_matches(configured, header_password or password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
