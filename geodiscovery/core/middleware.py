import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from geodiscovery.core.config import settings


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Ensures every client has a session cookie so its location context
    survives between requests.
    """
    async def dispatch(self, request: Request, call_next):
        cookie_name = settings.SESSION_COOKIE_NAME
        session_id = request.cookies.get(cookie_name)
        created_new = False

        if not session_id:
            session_id = secrets.token_urlsafe(24)
            created_new = True

        # Attach to request state for the location routes
        request.state.session_id = session_id

        response = await call_next(request)

        if created_new:
            response.set_cookie(
                key=cookie_name,
                value=session_id,
                max_age=settings.SESSION_MAX_AGE,
                httponly=True,
                secure=(settings.ENV == "production"),
                samesite="lax"
            )

        return response
