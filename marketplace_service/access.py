"""
access.py — Role-Gated View Access

Decides per navigable view whether the current principal may render it.

Decision order:
    1. Authentication still resolving  → "loading" (no redirect yet)
    2. No authenticated principal       → redirect to the sign-in page
    3. Admin-only view, profile email is not the configured administrator
       address                          → redirect to the dashboard
    4. View restricted to roles that exclude the principal's role
                                        → redirect to the dashboard
    5. Otherwise                        → "render"

Step 3 is separate from the role check: the administrator role
alone is not enough, the account must also be the configured address.
"""

import os
from typing import Dict, FrozenSet, Iterable, Optional

from .models import AccessDecision, AuthState, Profile, UserRole

ADMIN_EMAIL = os.environ.get("MARKETPLACE_ADMIN_EMAIL", "admin@campus-marketplace.example")

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"

RENDER = "render"
LOADING = "loading"
REDIRECT = "redirect"

# View name -> roles allowed to render it; empty means any authenticated principal
VIEW_ROLES: Dict[str, FrozenSet[UserRole]] = {
    "dashboard": frozenset(),
    "cart": frozenset(),
    "orders": frozenset(),
    "order-confirmation": frozenset(),
    "vendor": frozenset({UserRole.VENDOR}),
    "vendor-products": frozenset({UserRole.VENDOR}),
    "admin": frozenset({UserRole.ADMIN}),
    "admin-vendors": frozenset({UserRole.ADMIN}),
    "admin-products": frozenset({UserRole.ADMIN}),
    "admin-categories": frozenset({UserRole.ADMIN}),
    "admin-customers": frozenset({UserRole.ADMIN}),
}


def is_administrator(profile: Optional[Profile], admin_email: str = ADMIN_EMAIL) -> bool:
    """True only for an ADMIN profile whose email is the configured administrator address."""
    return profile is not None and profile.role == UserRole.ADMIN and profile.email == admin_email


def decide_access(
    view: str,
    auth_state: AuthState,
    profile: Optional[Profile] = None,
    allowed_roles: Optional[Iterable[UserRole]] = None,
    admin_email: str = ADMIN_EMAIL,
) -> AccessDecision:
    """
    Evaluates the access gate for one view.

    Args:
        view (str): Name of the requested view (echoed in the decision).
        auth_state (AuthState): absent, pending or present.
        profile (Profile, optional): The principal's profile when present.
        allowed_roles (iterable, optional): Roles permitted on the view.
        admin_email (str): Address the admin-only check compares against.

    Returns:
        AccessDecision: render, loading or redirect (with target path).
    """
    roles = frozenset(allowed_roles or ())

    if auth_state == AuthState.PENDING:
        return AccessDecision(view=view, action=LOADING)

    if auth_state == AuthState.ABSENT or profile is None:
        return AccessDecision(view=view, action=REDIRECT, redirect_to=LOGIN_PATH)

    if UserRole.ADMIN in roles and profile.email != admin_email:
        return AccessDecision(view=view, action=REDIRECT, redirect_to=DASHBOARD_PATH)

    if roles and profile.role not in roles:
        return AccessDecision(view=view, action=REDIRECT, redirect_to=DASHBOARD_PATH)

    return AccessDecision(view=view, action=RENDER)
