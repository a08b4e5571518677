"""Shared FastAPI dependencies: stores, relay, cookies and the current user."""

from dataclasses import dataclass
from uuid import uuid4

from fastapi import Depends, Request, Response

from novachat.agent import ChatService, CompletionRelay
from novachat.config import Settings, get_settings
from novachat.db import Stores, User, stores_for

SESSION_COOKIE = "novachat_session"
USER_COOKIE = "novachat_user"


def get_stores(settings: Settings = Depends(get_settings)) -> Stores:
    return stores_for(settings.data_dir)


def get_relay(settings: Settings = Depends(get_settings)) -> CompletionRelay:
    return CompletionRelay(settings)


def get_chat_service(
    settings: Settings = Depends(get_settings),
    stores: Stores = Depends(get_stores),
    relay: CompletionRelay = Depends(get_relay),
) -> ChatService:
    return ChatService(settings, stores, relay)


def set_cookie(response: Response, name: str, value: str) -> None:
    response.set_cookie(name, value, httponly=True, samesite="lax")


def clear_cookie(response: Response, name: str) -> None:
    response.delete_cookie(name, httponly=True, samesite="lax")


@dataclass
class SessionRef:
    """The caller's session id, and whether it was minted for this request."""

    id: str
    minted: bool = False


def get_session_ref(request: Request, response: Response) -> SessionRef:
    """
    Resolve the session cookie, minting a new id if there is none.

    The cookie is set on the dependency response; endpoints that return
    their own Response must call attach_session() themselves.
    """
    sid = request.cookies.get(SESSION_COOKIE)
    if sid:
        return SessionRef(sid)
    ref = SessionRef(str(uuid4()), minted=True)
    set_cookie(response, SESSION_COOKIE, ref.id)
    return ref


def attach_session(response: Response, session: SessionRef) -> Response:
    if session.minted:
        set_cookie(response, SESSION_COOKIE, session.id)
    return response


async def get_current_user(
    request: Request,
    stores: Stores = Depends(get_stores),
) -> User | None:
    # TODO: sign the user cookie; the id is unguessable but trusted as sent
    user_id = request.cookies.get(USER_COOKIE)
    if not user_id:
        return None
    return await stores.users.get(user_id)
