import hmac
import logging
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import RedirectResponse

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "app_session_valid"
SESSION_COOKIE_VALUE = "true"

SUPPORTED_LANGS = ("en", "cn")
DEFAULT_LANG = "en"

# Reachable without the cookie
PUBLIC_PATHS = {
    "/authenticate",
    "/logout",
    "/login",
    "/health",
    *(f"/{lang}/login" for lang in SUPPORTED_LANGS),
}


def authenticate(secret: Optional[str], configured_secret: str) -> bool:
    """
    Shared-secret check for the whole deployment. Exact string equality;
    compare_digest only keeps the timing independent of the secret.
    """
    if not isinstance(secret, str) or not configured_secret:
        return False
    return hmac.compare_digest(secret.encode("utf-8"), configured_secret.encode("utf-8"))


def set_session_cookie(response: Response, max_age: int) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=SESSION_COOKIE_VALUE,
        max_age=max_age,
        path="/",
        httponly=True,
    )


def clear_session_cookie(response: Response) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value="",
        max_age=0,
        path="/",
        httponly=True,
    )


def has_valid_session(request: Request) -> bool:
    return request.cookies.get(SESSION_COOKIE_NAME) == SESSION_COOKIE_VALUE


def lang_from_path(path: str) -> str:
    segments = path.split("/")
    if len(segments) > 1 and segments[1] in SUPPORTED_LANGS:
        return segments[1]
    return DEFAULT_LANG


def is_public_path(path: str) -> bool:
    return path.rstrip("/") in PUBLIC_PATHS


def guard(request: Request) -> Optional[Response]:
    """
    None when the request may proceed, otherwise a 302 to the login page
    of the language the path asked for.
    """
    path = request.url.path
    if is_public_path(path) or has_valid_session(request):
        return None

    lang = lang_from_path(path)
    logger.info("Unauthenticated request to %s, redirecting to login", path)
    return RedirectResponse(url=f"/{lang}/login", status_code=302)
