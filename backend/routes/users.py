import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from routes.deps import (
    current_user_id,
    get_directory,
    get_profiles,
    get_relationships,
    http_error,
)
from services.cache import ProfileCache
from services.directory import Directory
from services.errors import FriendshipError
from services.relationships import RelationshipService

logger = logging.getLogger("friendgraph.users")

router = APIRouter(prefix="/users")


@router.post("/login")
async def login(request: Request, user_id: str = Depends(current_user_id)):
    """Remember the bearer token user in the session cookie"""
    request.session["user_id"] = user_id
    return {"id": user_id}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"message": "Logged out successfully"}


@router.get("/me")
async def me(
    user_id: str = Depends(current_user_id),
    directory: Directory = Depends(get_directory),
):
    try:
        profile = await directory.fetch_user(user_id)
    except FriendshipError as e:
        raise http_error(e)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return profile


@router.get("/search")
async def search_users(
    name: str = Query(min_length=1),
    user_id: str = Depends(current_user_id),
    directory: Directory = Depends(get_directory),
    profiles: ProfileCache = Depends(get_profiles),
):
    try:
        user_ids = await directory.search(name)
        return {"users": await profiles.get_profiles(user_ids)}
    except FriendshipError as e:
        raise http_error(e)


@router.get("/{other_id}")
async def get_user(
    other_id: str,
    user_id: str = Depends(current_user_id),
    profiles: ProfileCache = Depends(get_profiles),
):
    try:
        found = await profiles.get_profiles([other_id])
    except FriendshipError as e:
        raise http_error(e)
    if not found:
        raise HTTPException(status_code=404, detail="User not found")
    return found[0]


@router.delete("/me")
async def delete_me(
    request: Request,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
    directory: Directory = Depends(get_directory),
    profiles: ProfileCache = Depends(get_profiles),
):
    """Delete the account: relationships first, so nobody keeps pointing at it"""
    try:
        rewritten = await relationships.purge_user(user_id)
        await directory.delete_user(user_id)
    except FriendshipError as e:
        raise http_error(e)
    profiles.forget(user_id)
    request.session.clear()
    logger.info(f"Deleted user {user_id}, {rewritten} relationship records updated")
    return {"message": "Deleted"}
