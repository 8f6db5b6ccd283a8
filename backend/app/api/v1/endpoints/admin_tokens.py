"""Admin endpoints for issuing, listing and revoking access tokens."""

from fastapi import APIRouter, Query, Request, status

from app.api.deps import AdminUser, DBSession
from app.core.errors import InvalidTokenError, NotFoundError, ValidationError
from app.core.rate_limit import RateLimits, get_admin_identifier, limiter
from app.models.access_token import TokenKind
from app.models.entity import EntityRef, EntityType
from app.schemas.tokens import TokenCreate, TokenIssued, TokenListResponse, TokenSummary
from app.services.entity_repository import EntityRepository, nfc_url
from app.services.token_store import TokenStore

router = APIRouter()


@router.post("", response_model=TokenIssued, status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def issue_token(
    request: Request,
    data: TokenCreate,
    db: DBSession,
    admin: AdminUser,
):
    """Issue a permanent, temporary or one-time token for a student or artist."""
    entity_ref = data.to_ref()
    if await EntityRepository(db).get(entity_ref) is None:
        label = entity_ref.entity_type.value.title()
        raise NotFoundError(f"{label} {entity_ref.entity_id} not found")

    store = TokenStore(db)
    if data.kind == TokenKind.TEMPORARY:
        token = await store.create_temporary(
            entity_ref, hours_valid=data.hours_valid, notes=data.notes, created_by=admin
        )
    elif data.kind == TokenKind.ONE_TIME:
        token = await store.create_one_time(entity_ref, notes=data.notes, created_by=admin)
    else:
        token = await store.create_permanent(entity_ref, notes=data.notes, created_by=admin)

    return TokenIssued(
        id=token.id,
        token=token.token,
        url=nfc_url(token.token),
        kind=token.kind,
        entity_type=entity_ref.entity_type,
        entity_id=entity_ref.entity_id,
        expires_at=token.expires_at,
        created_at=token.created_at,
    )


@router.get("", response_model=TokenListResponse)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def list_tokens(
    request: Request,
    db: DBSession,
    admin: AdminUser,
    entity_type: EntityType = Query(...),
    entity_id: str = Query(..., min_length=1, max_length=50),
):
    """List an entity's tokens, newest first. Token strings are masked."""
    try:
        entity_ref = EntityRef(entity_type, entity_id)
    except ValueError as e:
        raise ValidationError(str(e))

    store = TokenStore(db)
    tokens = await store.list_for_entity(entity_ref)
    items = [TokenSummary(**store.describe(token)) for token in tokens]
    return TokenListResponse(items=items, total=len(items))


@router.delete("/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(RateLimits.ADMIN, key_func=get_admin_identifier)
async def revoke_token(
    request: Request,
    token_id: str,
    db: DBSession,
    admin: AdminUser,
):
    """Revoke (hard delete) a token. Its tag stops resolving immediately."""
    try:
        await TokenStore(db).revoke_by_id(token_id)
    except InvalidTokenError:
        raise NotFoundError("Token not found")
