"""FastAPI dependencies for request authentication and service wiring.

This module provides reusable FastAPI dependencies for:
- Settings and Unit of Work factory access
- Bearer token authentication against Supabase Auth
- Submitter and gallery projector construction
"""

from typing import Annotated, Callable

from fastapi import Depends, Header, Request

from atelier.core.config import Settings
from atelier.services.auth import parse_bearer_token, verify_access_token
from atelier.services.gallery import GalleryProjector
from atelier.services.submitter import JobSubmitter
from atelier.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded during app startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.generations.get_by_id(generation_id)
    """
    return request.app.state.uow_factory


async def get_current_owner(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Authenticate the caller and return their user id.

    The token in ``Authorization: Bearer <token>`` is verified with the
    Supabase admin client stored on app.state during startup.

    Raises:
        AuthError: Missing header, malformed header, or rejected token
            (rendered as 401 by the app's exception handlers)
    """
    token = parse_bearer_token(authorization)
    return await verify_access_token(request.app.state.supabase, token)


def get_submitter(
    request: Request,
    uow_factory: Callable = Depends(get_uow_factory),
) -> JobSubmitter:
    """Build a JobSubmitter that wakes the in-process worker on dispatch."""
    return JobSubmitter(uow_factory, dispatch=request.app.state.worker_signal.notify)


def get_projector(uow_factory: Callable = Depends(get_uow_factory)) -> GalleryProjector:
    return GalleryProjector(uow_factory)
