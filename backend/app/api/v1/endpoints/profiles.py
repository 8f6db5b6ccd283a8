"""Public NFC profile endpoint.

``GET /p/{token}`` is the URL written to every physical tag. It is
unauthenticated (the token is the credential) and rate limited per client IP.

Every failure (unknown, revoked, expired, already-used token, or a token
whose profile is missing) returns the same 404 body so token state cannot
be probed. The precise reason goes to the ``security.tokens`` log and the
``token_resolutions_total`` metric.
"""

from fastapi import APIRouter, Request, Response

from app.api.deps import DBSession, Notifier
from app.core.client_ip import get_client_ip
from app.core.errors import APIError, InvalidAccessTokenError, TokenResolutionError
from app.core.rate_limit import RateLimits, limiter
from app.schemas.profile import ProfileResponse
from app.services.profile_access import ProfileAccessService

router = APIRouter()

# The page URL contains the tag's token
PROFILE_RESPONSE_HEADERS = {
    "Cache-Control": "private, no-store, max-age=0",
    "Pragma": "no-cache",
    "Referrer-Policy": "no-referrer",
}


@router.get(
    "/{token}",
    response_model=ProfileResponse,
    responses={404: {"model": APIError, "description": "Invalid or expired access token"}},
)
@limiter.limit(RateLimits.PROFILE)
async def get_profile_by_token(
    request: Request,
    response: Response,
    token: str,
    db: DBSession,
    notifier: Notifier,
):
    """
    Resolve an NFC access token to its public profile.

    On success a view session is opened and its id returned so the page can
    report actions and the session end.
    """
    service = ProfileAccessService(db, notifier=notifier)
    try:
        result = await service.access(
            token,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer=request.headers.get("referer"),
        )
    except TokenResolutionError:
        raise InvalidAccessTokenError()

    response.headers.update(PROFILE_RESPONSE_HEADERS)
    return ProfileResponse(success=True, session_id=result.session_id, data=result.data)
