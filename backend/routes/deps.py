from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from services.auth import TokenVerifier
from services.cache import ProfileCache
from services.directory import Directory
from services.errors import ConcurrencyExhausted, FriendshipError
from services.relationships import RelationshipService

bearer_scheme = HTTPBearer(auto_error=False)


def get_verifier(request: Request) -> TokenVerifier:
    return request.app.state.verifier


async def get_current_user_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_verifier),
) -> str | None:
    """The bearer token subject, or the user logged in the session"""
    if credentials:
        try:
            return await verifier.user_id(credentials.credentials)
        except FriendshipError as e:
            raise http_error(e)
    return request.session.get("user_id")


def current_user_id(user_id: str | None = Depends(get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_relationships(request: Request) -> RelationshipService:
    return request.app.state.relationships


def get_directory(request: Request) -> Directory:
    return request.app.state.directory


def get_profiles(request: Request) -> ProfileCache:
    return request.app.state.profiles


def http_error(error: FriendshipError) -> HTTPException:
    """The HTTPException to answer a rejected or failed operation with"""
    headers = None
    if isinstance(error, ConcurrencyExhausted):
        headers = {"Retry-After": "1"}
    elif error.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(
        status_code=error.status_code, detail=error.detail, headers=headers
    )
