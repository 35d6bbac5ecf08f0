"""Shared API dependencies for authentication and service wiring."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from feedline.core.errors import UnauthenticatedError
from feedline.core.security import decode_actor_id
from feedline.db.store import RelationStore, get_store
from feedline.services.feed import FeedService
from feedline.services.notifications import NotificationDispatcher, NotificationService
from feedline.services.polls import PollService
from feedline.services.posts import PostService
from feedline.services.relations import RelationService
from feedline.services.toggles import ToggleEngine

# Missing credentials are reported as 401 by get_current_actor, not by the scheme.
bearer_scheme = HTTPBearer(auto_error=False)

CredentialsDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def get_store_dep() -> RelationStore:
    """Return the process-wide relation store."""
    return get_store()


StoreDep = Annotated[RelationStore, Depends(get_store_dep)]


def get_optional_actor(credentials: CredentialsDep) -> str | None:
    """Return the actor id from the bearer token, or None without credentials."""
    if credentials is None:
        return None
    try:
        return decode_actor_id(credentials.credentials)
    except UnauthenticatedError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(err),
            headers={"WWW-Authenticate": "Bearer"},
        ) from err


def get_current_actor(actor_id: Annotated[str | None, Depends(get_optional_actor)]) -> str:
    """Return the authenticated actor id.

    Raises:
        HTTPException: 401 if no valid bearer token was sent.
    """
    if actor_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor_id


CurrentActorDep = Annotated[str, Depends(get_current_actor)]
OptionalActorDep = Annotated[str | None, Depends(get_optional_actor)]


def get_notifier(request: Request, store: StoreDep) -> NotificationDispatcher:
    """Return the running dispatcher, or an idle one when the app has none."""
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = NotificationDispatcher(NotificationService(store), enabled=False)
    return notifier


NotifierDep = Annotated[NotificationDispatcher, Depends(get_notifier)]


def get_toggle_engine(store: StoreDep, notifier: NotifierDep) -> ToggleEngine:
    return ToggleEngine(RelationService(store), notifier)


def get_post_service(store: StoreDep) -> PostService:
    return PostService(store)


def get_poll_service(store: StoreDep) -> PollService:
    return PollService(store)


def get_feed_service(store: StoreDep) -> FeedService:
    return FeedService(store)


def get_notification_service(store: StoreDep) -> NotificationService:
    return NotificationService(store)


ToggleEngineDep = Annotated[ToggleEngine, Depends(get_toggle_engine)]
PostServiceDep = Annotated[PostService, Depends(get_post_service)]
PollServiceDep = Annotated[PollService, Depends(get_poll_service)]
FeedServiceDep = Annotated[FeedService, Depends(get_feed_service)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
