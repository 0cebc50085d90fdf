"""Account endpoints — tenant bootstrap, login and API token management.

These provide the authenticated tenant context the billing routes run under.
"""

import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlmodel import select

from plansync.api.deps import Auth, Session
from plansync.core.security import (
    create_jwt,
    generate_api_token,
    hash_api_token,
    hash_password,
    verify_password,
)
from plansync.models.account import (
    ApiToken,
    ApiTokenCreate,
    ApiTokenCreated,
    ApiTokenRead,
    User,
    UserRead,
    UserRole,
)
from plansync.models.tenant import Tenant, TenantRead

router = APIRouter(tags=["accounts"])


# ── Schemas ──────────────────────────────────────────────────

class TenantBootstrapRequest(BaseModel):
    tenant_name: str = Field(max_length=255)
    tenant_slug: str = Field(max_length=100, pattern=r"^[a-z0-9\-]+$")
    owner_email: EmailStr
    owner_password: str = Field(min_length=8, max_length=128)
    owner_display_name: str = Field(default="", max_length=255)


class TenantBootstrapResponse(BaseModel):
    tenant: TenantRead
    api_token: str = Field(description="Shown once — store it securely")
    token_prefix: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
    tenant: TenantRead


def _new_token(tenant_id: uuid.UUID, user_id: uuid.UUID, name: str) -> tuple[ApiToken, str]:
    raw = generate_api_token()
    token = ApiToken(
        tenant_id=tenant_id,
        user_id=user_id,
        name=name,
        token_hash=hash_api_token(raw),
        token_prefix=raw[:8],
    )
    return token, raw


# ── Tenants ──────────────────────────────────────────────────

@router.post(
    "/tenants",
    response_model=TenantBootstrapResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new tenant (bootstrap)",
)
async def bootstrap_tenant(
    body: TenantBootstrapRequest,
    session: Session,
) -> TenantBootstrapResponse:
    """Create a tenant, its owner and a first API token.

    The only unauthenticated write endpoint. No billing profile is created
    here; the tenant starts on the free plan implicitly.
    """
    taken = await session.execute(select(Tenant.id).where(Tenant.slug == body.tenant_slug))
    if taken.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Slug '{body.tenant_slug}' is already taken",
        )
    taken = await session.execute(select(User.id).where(User.email == body.owner_email))
    if taken.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email is already registered",
        )

    tenant = Tenant(name=body.tenant_name, slug=body.tenant_slug)
    session.add(tenant)
    await session.flush()

    owner = User(
        tenant_id=tenant.id,
        email=body.owner_email,
        password_hash=hash_password(body.owner_password),
        display_name=body.owner_display_name,
        role=UserRole.OWNER,
    )
    session.add(owner)
    await session.flush()

    token, raw = _new_token(tenant.id, owner.id, "default")
    session.add(token)
    await session.commit()
    await session.refresh(tenant)

    return TenantBootstrapResponse(
        tenant=TenantRead.model_validate(tenant),
        api_token=raw,
        token_prefix=token.token_prefix,
    )


@router.get("/tenants/me", response_model=TenantRead, summary="Get current tenant info")
async def get_current_tenant(auth: Auth, session: Session) -> TenantRead:
    tenant = await session.get(Tenant, auth.tenant_id)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return TenantRead.model_validate(tenant)


# ── Login ────────────────────────────────────────────────────

@router.post("/auth/login", response_model=LoginResponse)
async def login(body: LoginRequest, session: Session) -> LoginResponse:
    """Authenticate with email + password, receive a JWT."""
    result = await session.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    tenant = await session.get(Tenant, user.tenant_id)
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant is disabled")

    return LoginResponse(
        access_token=create_jwt(
            subject=str(user.id), tenant_id=str(user.tenant_id), role=user.role,
        ),
        user=UserRead.model_validate(user),
        tenant=TenantRead.model_validate(tenant),
    )


# ── API tokens ───────────────────────────────────────────────

@router.post(
    "/api-tokens",
    response_model=ApiTokenCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new API token",
)
async def create_api_token(body: ApiTokenCreate, auth: Auth, session: Session) -> ApiTokenCreated:
    """The raw token is returned once."""
    token, raw = _new_token(auth.tenant_id, auth.user_id, body.name)
    session.add(token)
    await session.commit()
    await session.refresh(token)
    return ApiTokenCreated(**ApiTokenRead.model_validate(token).model_dump(), raw_token=raw)


@router.get("/api-tokens", response_model=list[ApiTokenRead])
async def list_api_tokens(auth: Auth, session: Session) -> list[ApiTokenRead]:
    stmt = (
        select(ApiToken)
        .where(ApiToken.tenant_id == auth.tenant_id)
        .order_by(ApiToken.created_at.desc())  # type: ignore[union-attr]
    )
    result = await session.execute(stmt)
    return [ApiTokenRead.model_validate(t) for t in result.scalars().all()]


@router.delete("/api-tokens/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_api_token(token_id: uuid.UUID, auth: Auth, session: Session) -> None:
    """Soft-delete: the token stays listed but can no longer authenticate."""
    result = await session.execute(
        select(ApiToken).where(ApiToken.id == token_id, ApiToken.tenant_id == auth.tenant_id)
    )
    token = result.scalar_one_or_none()
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    token.is_active = False
    session.add(token)
    await session.commit()
