"""Account endpoints: signup, signin, signout, me, delete."""

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from novachat.db import Stores, User
from novachat.errors import AuthError, ValidationError

from .deps import USER_COOKIE, clear_cookie, get_current_user, get_stores, set_cookie

router = APIRouter(prefix="/auth", tags=["auth"])


# --- Schemas ---


class Credentials(BaseModel):
    username: str | None = None
    password: str | None = None


class PublicUser(BaseModel):
    id: str
    username: str


class UserDetail(PublicUser):
    memory: list[str]


class AuthResponse(BaseModel):
    ok: bool = True
    user: PublicUser


class MeResponse(BaseModel):
    user: UserDetail | None


class OkResponse(BaseModel):
    ok: bool = True


def _require_credentials(data: Credentials | None) -> tuple[str, str]:
    if data is None or not data.username or not data.password:
        raise ValidationError("username and password required")
    return data.username, data.password


# --- Routes ---


@router.post("/signup", response_model=AuthResponse)
async def signup(
    response: Response,
    data: Credentials | None = None,
    stores: Stores = Depends(get_stores),
) -> dict:
    """Create an account and sign in as it."""
    username, password = _require_credentials(data)
    user = await stores.users.create(username, password)
    set_cookie(response, USER_COOKIE, user.id)
    return {"ok": True, "user": {"id": user.id, "username": user.username}}


@router.post("/signin", response_model=AuthResponse)
async def signin(
    response: Response,
    data: Credentials | None = None,
    stores: Stores = Depends(get_stores),
) -> dict:
    username, password = _require_credentials(data)
    user = await stores.users.authenticate(username, password)
    set_cookie(response, USER_COOKIE, user.id)
    return {"ok": True, "user": {"id": user.id, "username": user.username}}


@router.post("/signout", response_model=OkResponse)
async def signout(response: Response) -> dict:
    clear_cookie(response, USER_COOKIE)
    return {"ok": True}


@router.get("/me", response_model=MeResponse)
async def me(user: User | None = Depends(get_current_user)) -> dict:
    """Get the signed-in user with their saved memories, or null."""
    if user is None:
        return {"user": None}
    return {"user": {"id": user.id, "username": user.username, "memory": user.memory}}


@router.delete("/delete", response_model=OkResponse)
async def delete_account(
    response: Response,
    user: User | None = Depends(get_current_user),
    stores: Stores = Depends(get_stores),
) -> dict:
    """Delete the signed-in user's account."""
    if user is None:
        raise AuthError("not_authenticated")
    await stores.users.delete(user.id)
    clear_cookie(response, USER_COOKIE)
    return {"ok": True}
