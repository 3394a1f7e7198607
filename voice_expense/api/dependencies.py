"""FastAPI dependency injection configuration."""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, Header, Request

from voice_expense.api.errors import ApiError
from voice_expense.config import AppSettings
from voice_expense.errors.taxonomy import ErrorCode
from voice_expense.pipeline import AppComponents


def get_components(request: Request) -> AppComponents:
    """Returns the components wired at startup."""
    return request.app.state.components


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.app_settings


ComponentsDep = Annotated[AppComponents, Depends(get_components)]
AppSettingsDep = Annotated[AppSettings, Depends(get_app_settings)]


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: Bearer <token>' header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    components: ComponentsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> UUID:
    """Resolve the caller, or fail with 401."""
    token = bearer_token(authorization)
    user_id = await components.auth_provider.authenticate(token) if token else None
    if user_id is None:
        raise ApiError(401, ErrorCode.UNAUTHORIZED)
    return user_id


CurrentUserDep = Annotated[UUID, Depends(get_current_user)]
