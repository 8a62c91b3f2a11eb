from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from permits import accounts
from permits.auth import AuthenticatedUser
from permits.context import Context
from permits.exceptions import AuthenticationError, AuthorizationError

DEV_BYPASS_HEADER = "x-dev-bypass"
DEV_BYPASS_USER = AuthenticatedUser(uid="dev-bypass", email="", claims={})

# auto_error=False, to respond 401 instead of 403 if the header is missing.
bearer = HTTPBearer(auto_error=False)


def get_context(request: Request) -> Context:
    return request.app.state.context


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    context: Context = Depends(get_context),
) -> AuthenticatedUser:
    """
    :raises AuthenticationError: If the bearer token is missing or invalid.
    """
    if credentials is None or not credentials.credentials.strip():
        raise AuthenticationError("Missing or invalid Authorization header")
    return await context.verifier.verify(credentials.credentials.strip())


async def get_export_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    context: Context = Depends(get_context),
) -> AuthenticatedUser:
    """
    Like :func:`get_current_user`, but outside production, the ``x-dev-bypass: 1`` header stands in for a token.
    """
    if not context.settings.production and request.headers.get(DEV_BYPASS_HEADER) == "1":
        return DEV_BYPASS_USER
    return await get_current_user(credentials, context)


async def get_admin_user(
    user: AuthenticatedUser = Depends(get_current_user),
    context: Context = Depends(get_context),
) -> AuthenticatedUser:
    if not accounts.is_admin(context.database, context.settings.database_namespace, user.uid, user.email):
        raise AuthorizationError("Forbidden.")
    return user


async def get_treasury_user(
    user: AuthenticatedUser = Depends(get_current_user),
    context: Context = Depends(get_context),
) -> AuthenticatedUser:
    if not user.email:
        raise AuthorizationError("Authenticated user is missing email.")
    if not accounts.is_treasury(context.database, context.settings.database_namespace, user.email):
        raise AuthorizationError("Authenticated user is not a treasury account.")
    return user
