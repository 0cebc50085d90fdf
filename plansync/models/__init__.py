"""Import all models so SQLModel.metadata picks them up."""

from plansync.models.account import (
    ApiToken,
    ApiTokenCreate,
    ApiTokenCreated,
    ApiTokenRead,
    User,
    UserRead,
    UserRole,
)
from plansync.models.billing_profile import (
    BillingProfile,
    BillingProfileRead,
    SubscriptionStatus,
)
from plansync.models.product import (
    Product,
    ProductCreate,
    ProductRead,
    ProductStatus,
    ProductUpdate,
)
from plansync.models.tenant import Tenant, TenantRead

__all__ = [
    "ApiToken",
    "ApiTokenCreate",
    "ApiTokenCreated",
    "ApiTokenRead",
    "BillingProfile",
    "BillingProfileRead",
    "Product",
    "ProductCreate",
    "ProductRead",
    "ProductStatus",
    "ProductUpdate",
    "SubscriptionStatus",
    "Tenant",
    "TenantRead",
    "User",
    "UserRead",
    "UserRole",
]
