from fastapi import APIRouter, Depends

from routes.deps import current_user_id, get_profiles, get_relationships, http_error
from services.cache import ProfileCache
from services.errors import FriendshipError
from services.relationships import RelationshipService

router = APIRouter(prefix="/friends")


@router.get("")
async def list_friends(
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
    profiles: ProfileCache = Depends(get_profiles),
):
    try:
        friend_ids = await relationships.list_friends(user_id)
        return {"friends": await profiles.get_profiles(friend_ids)}
    except FriendshipError as e:
        raise http_error(e)


@router.get("/requests/incoming")
async def list_incoming(
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
    profiles: ProfileCache = Depends(get_profiles),
):
    try:
        sender_ids = await relationships.list_incoming(user_id)
        return {"incoming": await profiles.get_profiles(sender_ids)}
    except FriendshipError as e:
        raise http_error(e)


@router.get("/requests/outgoing")
async def list_outgoing(
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
    profiles: ProfileCache = Depends(get_profiles),
):
    try:
        recipient_ids = await relationships.list_outgoing(user_id)
        return {"outgoing": await profiles.get_profiles(recipient_ids)}
    except FriendshipError as e:
        raise http_error(e)


@router.get("/status/{other_id}")
async def friendship_status(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    """Return the relationship status between the current user and the target user.
    Possible statuses: none, self, friends, pending_outgoing, pending_incoming
    """
    try:
        return {"status": await relationships.relationship_status(user_id, other_id)}
    except FriendshipError as e:
        raise http_error(e)


@router.post("/requests/{other_id}", status_code=201)
async def send_friend_request(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    """Request the friendship, or become friends if they already asked us"""
    try:
        status = await relationships.send_request(user_id, other_id)
    except FriendshipError as e:
        raise http_error(e)
    return {"status": status}


@router.post("/requests/{other_id}/accept")
async def accept_request(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    try:
        status = await relationships.accept_request(user_id, other_id)
    except FriendshipError as e:
        raise http_error(e)
    return {"status": status}


@router.post("/requests/{other_id}/ignore")
async def ignore_request(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    try:
        status = await relationships.ignore_request(user_id, other_id)
    except FriendshipError as e:
        raise http_error(e)
    return {"status": status}


@router.delete("/requests/{other_id}")
async def cancel_request(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    try:
        status = await relationships.cancel_request(user_id, other_id)
    except FriendshipError as e:
        raise http_error(e)
    return {"status": status}


@router.delete("/{other_id}")
async def unfriend(
    other_id: str,
    user_id: str = Depends(current_user_id),
    relationships: RelationshipService = Depends(get_relationships),
):
    try:
        status = await relationships.remove_friend(user_id, other_id)
    except FriendshipError as e:
        raise http_error(e)
    return {"status": status}
