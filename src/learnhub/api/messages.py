"""Message history API — what a client loads before the live stream.

Routes:
- GET /communities/:id/messages → community history
- GET /messages/:user_id → direct messages with the current user
- GET /communities/:id/members → member profiles

History is returned as MessageWithAuthor, oldest first: the same shape
the WebSocket pushes, so clients append live messages to it unchanged.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learnhub.auth.dependencies import CurrentIdentity, get_current_user
from learnhub.config import settings
from learnhub.db.engine import get_db
from learnhub.schemas.message import MessageWithAuthor, UserPublic
from learnhub.store import MessageStore, PersistenceError
from learnhub.store.sql import SqlMessageStore

router = APIRouter()

_limit = Query(
    settings.history_default_limit,
    ge=1,
    le=settings.history_max_limit,
    description="Number of most recent messages to return",
)


def _get_store(request: Request, db: AsyncSession = Depends(get_db)) -> MessageStore:
    memory = getattr(request.app.state, "memory_store", None)
    if memory is not None:
        return memory
    return SqlMessageStore(db)


def _unavailable(e: PersistenceError) -> HTTPException:
    return HTTPException(status_code=503, detail=f"Message store unavailable: {e}")


# ─── Community history ──────────────────────────────────


@router.get(
    "/communities/{community_id}/messages",
    response_model=list[MessageWithAuthor],
)
async def list_community_messages(
    community_id: str,
    limit: int = _limit,
    store: MessageStore = Depends(_get_store),
):
    """Latest messages of a community, oldest first."""
    try:
        if not await store.community_exists(community_id):
            raise HTTPException(status_code=404, detail="Community not found")
        return await store.get_community_messages(community_id, limit=limit)
    except PersistenceError as e:
        raise _unavailable(e)


# ─── Direct history ─────────────────────────────────────


@router.get("/messages/{user_id}", response_model=list[MessageWithAuthor])
async def list_direct_messages(
    user_id: str,
    limit: int = _limit,
    store: MessageStore = Depends(_get_store),
    current: CurrentIdentity = Depends(get_current_user),
):
    """Latest direct messages between the current user and `user_id`, oldest first."""
    try:
        if not await store.get_user(user_id):
            raise HTTPException(status_code=404, detail="User not found")
        return await store.get_direct_messages(current.user_id, user_id, limit=limit)
    except PersistenceError as e:
        raise _unavailable(e)


# ─── Members ────────────────────────────────────────────


@router.get(
    "/communities/{community_id}/members",
    response_model=list[UserPublic],
)
async def list_community_members(
    community_id: str,
    store: MessageStore = Depends(_get_store),
):
    """Profiles of everyone currently in the community."""
    try:
        if not await store.community_exists(community_id):
            raise HTTPException(status_code=404, detail="Community not found")
        return await store.get_community_members(community_id)
    except PersistenceError as e:
        raise _unavailable(e)
