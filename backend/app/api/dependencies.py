from functools import lru_cache

from fastapi import Cookie, Depends, Response

from app.config import get_settings
from app.services.openai_service import OpenAIService
from app.services.session_store import SessionStore, Workspace, get_session_store


@lru_cache
def get_analyst() -> OpenAIService:
    return OpenAIService()


async def get_workspace(
    response: Response,
    session_id: str | None = Cookie(None),
    store: SessionStore = Depends(get_session_store),
) -> Workspace:
    """Dependency returning the caller's workspace, issuing the session cookie for new ones."""
    workspace = store.get_or_create(session_id)
    if workspace.client_id != session_id:
        settings = get_settings()
        response.set_cookie(
            key="session_id",
            value=workspace.client_id,
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
            domain=settings.cookie_domain,
            max_age=settings.session_ttl,
        )
    return workspace


async def get_existing_workspace(
    session_id: str | None = Cookie(None),
    store: SessionStore = Depends(get_session_store),
) -> Workspace | None:
    """Dependency returning the caller's workspace without creating one."""
    return store.get(session_id)
