"""
Access scope resolution.

Turns an authenticated user into a :class:`Scope` (visible firms plus allowed
actions) and enforces it. Every read filter and every write check goes
through :data:`CAPABILITY_MATRIX`; there are no per-endpoint role checks.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from firmwatch.core.auth import Role
from firmwatch.core.errors import AuthorizationError
from firmwatch.domain.models import ALL_FIRMS, Action, FirmFilter, Scope, User

logger = structlog.get_logger()

CAPABILITY_MATRIX: Mapping[tuple[Role, Action], bool] = {
    (Role.ADMIN, Action.READ): True,
    (Role.ADMIN, Action.CREATE): True,
    (Role.ADMIN, Action.UPDATE): True,
    (Role.ADMIN, Action.DELETE): True,
    (Role.ADMIN, Action.ACKNOWLEDGE): True,
    (Role.ADMIN, Action.SCAN): True,
    (Role.MANAGER, Action.READ): True,
    (Role.MANAGER, Action.CREATE): True,
    (Role.MANAGER, Action.UPDATE): True,
    (Role.MANAGER, Action.DELETE): True,
    (Role.MANAGER, Action.ACKNOWLEDGE): True,
    (Role.MANAGER, Action.SCAN): False,
    (Role.USER, Action.READ): True,
    (Role.USER, Action.CREATE): True,
    (Role.USER, Action.UPDATE): True,
    (Role.USER, Action.DELETE): False,
    (Role.USER, Action.ACKNOWLEDGE): True,
    (Role.USER, Action.SCAN): False,
    (Role.VIEWER, Action.READ): True,
    (Role.VIEWER, Action.CREATE): False,
    (Role.VIEWER, Action.UPDATE): False,
    (Role.VIEWER, Action.DELETE): False,
    (Role.VIEWER, Action.ACKNOWLEDGE): False,
    (Role.VIEWER, Action.SCAN): False,
}

# Roles whose firm filter comes from the user's firm_access column
_ASSIGNED_FIRM_ROLES = frozenset({Role.MANAGER, Role.VIEWER})


def resolve(user: User) -> Scope:
    """Compute the scope for ``user``. Unknown roles get no capabilities."""
    try:
        role = Role(user.role)
    except ValueError:
        logger.warning("scope_unknown_role", user_id=user.user_id, role=user.role)
        return Scope(user_id=user.user_id, role=user.role, firm_filter=frozenset(), capabilities={})

    firm_filter: FirmFilter = user.firm_access if role in _ASSIGNED_FIRM_ROLES else ALL_FIRMS
    capabilities = {action: CAPABILITY_MATRIX.get((role, action), False) for action in Action}
    return Scope(
        user_id=user.user_id,
        role=role.value,
        firm_filter=firm_filter,
        capabilities=capabilities,
    )


def can(scope: Scope, action: Action) -> bool:
    return scope.capabilities.get(action, False)


def apply(scope: Scope, requested: Iterable[str] | str | None = None) -> FirmFilter:
    """Narrow the scope's firm filter by a caller-supplied filter.

    Caller-supplied firm ids outside the scope are dropped, so the result is
    never wider than the scope.
    """
    if requested is None:
        return scope.firm_filter
    wanted = frozenset([requested]) if isinstance(requested, str) else frozenset(requested)
    if not wanted:
        return scope.firm_filter
    if scope.firm_filter == ALL_FIRMS:
        return wanted
    return wanted & scope.firm_filter


def authorize(scope: Scope, action: Action, target_firm_id: str | None = None) -> None:
    """Raise :class:`AuthorizationError` unless ``action`` on ``target_firm_id`` is allowed."""
    if not can(scope, action):
        logger.info(
            "authorization_denied",
            user_id=scope.user_id,
            role=scope.role,
            action=action.value,
            reason="capability",
        )
        raise AuthorizationError(
            f"Role '{scope.role}' may not {action.value}",
            action=action.value,
            firm_id=target_firm_id,
        )

    if target_firm_id is not None and not scope.covers(target_firm_id):
        logger.info(
            "authorization_denied",
            user_id=scope.user_id,
            role=scope.role,
            action=action.value,
            firm_id=target_firm_id,
            reason="firm_scope",
        )
        raise AuthorizationError(
            "You do not have access to this firm",
            action=action.value,
            firm_id=target_firm_id,
        )


def describe(scope: Scope) -> dict:
    """JSON-friendly view of a scope for ``GET /auth/me``."""
    firms = ALL_FIRMS if scope.firm_filter == ALL_FIRMS else sorted(scope.firm_filter)
    return {
        "role": scope.role,
        "firm_filter": firms,
        "capabilities": {action.value: allowed for action, allowed in scope.capabilities.items()},
    }
