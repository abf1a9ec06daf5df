"""Admin authentication: HTTP Basic against the configured credentials."""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from id100.config import settings
from id100.core.security import constant_time_equals

logger = logging.getLogger("id100.auth")

ADMIN_REALM = "Admin Area"

_basic = HTTPBasic(auto_error=False, realm=ADMIN_REALM)


async def require_admin(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(_basic),
) -> str:
    """Dependency that admits only the configured administrator.

    Answers 500 when no admin credentials are configured at all, and 401
    with a Basic challenge for missing or wrong credentials.
    """
    if not settings.admin_configured:
        logger.error("Admin credentials are not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration",
        )
    if credentials is not None:
        # Evaluate both comparisons so timing does not reveal which one failed
        user_ok = constant_time_equals(credentials.username, settings.admin_username)
        password_ok = constant_time_equals(credentials.password, settings.admin_password)
        if user_ok and password_ok:
            request.state.user_id = f"admin:{credentials.username}"
            return credentials.username
    client_ip = request.client.host if request.client else "-"
    logger.warning("Rejected admin credentials from %s", client_ip)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": f'Basic realm="{ADMIN_REALM}"'},
    )
