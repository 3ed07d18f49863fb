"""FastAPI authentication dependencies for the correction file routes."""
import secrets
from typing import Annotated, Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials


# Username is ignored; only the password is checked
basic_auth = HTTPBasic(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Basic"},
    )


async def require_password(
    request: Request,
    credentials: Annotated[Optional[HTTPBasicCredentials], Security(basic_auth)] = None,
) -> None:
    """Validate the basic auth password against the shared secret.

    Raises:
        HTTPException: 401 "Password missing." or "Incorrect password."
    """
    expected = request.app.state.settings.authentication

    if credentials is None or not credentials.password:
        raise _unauthorized("Password missing.")

    if not secrets.compare_digest(
        credentials.password.encode("utf-8"), expected.encode("utf-8")
    ):
        raise _unauthorized("Incorrect password.")
