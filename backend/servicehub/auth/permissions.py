"""Granular permission system for ServiceHub RBAC.

Design:
  - Each role has a set of DEFAULT permissions (defined here, not in DB).
  - The identity provider may attach explicit overrides to the access token
    as a JSON dict of {perm: True/False}.
  - `resolve_permissions(role, overrides)` computes the effective set.

Permission naming: `<resource>.<action>`
  Resources: catalog, assignments, billing, invites
  Actions:   read, write, delete, pay, admin, manage
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # Catalog (categories + services)
    "catalog.read",
    "catalog.write",

    # Service assignments and renewal schedules
    "assignments.read",
    "assignments.write",
    "assignments.delete",

    # Billing
    "billing.read",           # own history / stats / services
    "billing.pay",            # pay own renewal installments
    "billing.admin",          # unscoped history, record deletion

    # Client onboarding
    "invites.manage",
}


# ── Role → default permissions ──────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "admin": ALL_PERMISSIONS.copy(),

    "client": {
        "catalog.read",
        "billing.read",
        "billing.pay",
    },
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(
    role: str,
    custom_overrides: dict[str, bool] | None = None,
) -> list[str]:
    """Compute effective permissions for a user.

    1. Start with the role's defaults.
    2. Apply custom_overrides: {perm: True} adds, {perm: False} removes.
    3. Return a sorted list.
    """
    base = ROLE_DEFAULTS.get(role, set()).copy()

    if custom_overrides:
        for perm, granted in custom_overrides.items():
            if perm not in ALL_PERMISSIONS:
                continue  # ignore unknown permissions
            if granted:
                base.add(perm)
            else:
                base.discard(perm)

    return sorted(base)


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
