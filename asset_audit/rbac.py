"""
asset_audit/rbac.py

Permission normalization and evaluation.

A PermissionSet is an ordered mapping Action -> Effect holding exactly one entry
per catalog action, in catalog order. Anything coming from outside (the users
table, a request body, a stale client) goes through normalize() first.

Key principle: allAccess is NOT a wildcard here. It is an ordinary action whose
value the permission editor keeps consistent with the other actions.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

try:
    from asset_audit.catalog import ALL_ACTIONS, Action, Effect
    from asset_audit.errors import UnknownActionError
except ModuleNotFoundError:
    from catalog import ALL_ACTIONS, Action, Effect
    from errors import UnknownActionError

logger = logging.getLogger(__name__)

PermissionSet = Dict[Action, Effect]

_ACTION_VALUES = {a.value: a for a in Action}
_EFFECT_VALUES = {e.value: e for e in Effect}


# ============================================================================
# Boundary Parsing
# ============================================================================

def parse_action(value: Any) -> Action:
    """
    Resolve an action identifier against the catalog.

    Args:
        value: Action member or its string value (e.g. "assetMaster:edit")

    Returns:
        The matching Action

    Raises:
        UnknownActionError: If the value is not part of the catalog
    """
    if isinstance(value, Action):
        return value
    action = _ACTION_VALUES.get(value) if isinstance(value, str) else None
    if action is None:
        raise UnknownActionError(value)
    return action


def _lookup_action(value: Any) -> Optional[Action]:
    try:
        return parse_action(value)
    except UnknownActionError:
        return None


def _coerce_effect(value: Any) -> Effect:
    if isinstance(value, Effect):
        return value
    return _EFFECT_VALUES.get(value, Effect.DENY)


def _iter_pairs(existing: Any) -> Iterable[tuple]:
    """Yield (action, effect) pairs from any supported permission shape."""
    if existing is None:
        return
    if isinstance(existing, Mapping):
        yield from existing.items()
        return
    for item in existing:
        if isinstance(item, Mapping):
            yield item.get("action"), item.get("effect")
        elif isinstance(item, (tuple, list)) and len(item) == 2:
            yield item[0], item[1]
        else:
            # Permission model or anything else exposing the two attributes
            yield getattr(item, "action", None), getattr(item, "effect", None)


# ============================================================================
# Normalization
# ============================================================================

def normalize(existing: Union[Iterable[Any], Mapping[Any, Any], None] = None) -> PermissionSet:
    """
    Produce a complete permission set from a sparse or stale permission list.

    Every catalog action appears exactly once, in catalog order. An action's
    effect is taken from `existing` (last occurrence wins) and defaults to Deny.
    Unknown actions are dropped so a stale client cannot inject them;
    unrecognised effect values count as Deny.

    Pure and idempotent: normalize(normalize(x)) == normalize(x).

    Args:
        existing: List of Permission models, {"action", "effect"} dicts,
            (action, effect) pairs, or an existing PermissionSet mapping

    Returns:
        A new PermissionSet
    """
    found: Dict[Action, Effect] = {}
    for raw_action, raw_effect in _iter_pairs(existing):
        action = _lookup_action(raw_action)
        if action is None:
            logger.debug("[PERMS] Dropping unknown action during normalization: %r", raw_action)
            continue
        found[action] = _coerce_effect(raw_effect)

    return {action: found.get(action, Effect.DENY) for action in ALL_ACTIONS}


def to_permission_list(permissions: PermissionSet) -> List[Dict[str, str]]:
    """Wire representation in catalog order: [{"action": ..., "effect": ...}]."""
    return [
        {"action": action.value, "effect": permissions.get(action, Effect.DENY).value}
        for action in ALL_ACTIONS
    ]


# ============================================================================
# Evaluation
# ============================================================================

def can_access(permissions: Optional[Mapping[Action, Effect]], action: Union[Action, str]) -> bool:
    """
    Check whether a permission set allows an action.

    Returns:
        True iff the set contains (action, Allow). Unknown actions and missing
        sets are denied.
    """
    if not permissions:
        return False
    resolved = _lookup_action(action)
    if resolved is None:
        return False
    return permissions.get(resolved) is Effect.ALLOW


def can_access_all(permissions: Optional[Mapping[Action, Effect]], *actions: Union[Action, str]) -> bool:
    """
    Check that every listed action is allowed.

    This is the gate protected endpoints use. An empty or missing permission
    set is always denied, even when no actions are listed.
    """
    if not permissions:
        return False
    return all(can_access(permissions, action) for action in actions)


def has_full_access(permissions: Optional[Mapping[Action, Effect]]) -> bool:
    """Whether the allAccess summary action is granted."""
    return can_access(permissions, Action.ALL_ACCESS)


def allowed_actions(permissions: Optional[Mapping[Action, Effect]]) -> Set[Action]:
    if not permissions:
        return set()
    return {action for action, effect in permissions.items() if effect is Effect.ALLOW}


# ============================================================================
# Role Defaults
# ============================================================================

class Role:
    """Role constants for default permission sets."""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    AUDITOR = "auditor"
    SUPERVISOR = "supervisor"
    USER = "user"


ROLE_ALLOW: Dict[str, Set[Action]] = {
    Role.SUPERADMIN: set(ALL_ACTIONS),
    Role.ADMIN: {
        Action.DASHBOARD_VIEW,
        Action.DASHBOARD_EDIT,
        Action.MASTERS_VIEW,
        Action.MASTERS_EDIT,
        Action.USER_MASTER_VIEW,
        Action.USER_MASTER_EDIT,
        Action.ROLE_MASTER_VIEW,
        Action.ASSET_MASTER_VIEW,
        Action.ASSET_MASTER_EDIT,
        Action.LOCATION_MASTER_VIEW,
        Action.LOCATION_MASTER_EDIT,
        Action.STATE_MASTER_VIEW,
        Action.STATE_MASTER_EDIT,
        Action.GENERATE_QR_CODE,
        Action.AUDIT_REPORT_VIEW,
        Action.AUDIT_REPORT_EDIT,
    },
    Role.AUDITOR: {
        Action.DASHBOARD_VIEW,
        Action.MASTERS_VIEW,
        Action.ASSET_MASTER_VIEW,
        Action.GENERATE_QR_CODE,
        Action.AUDIT_REPORT_VIEW,
    },
    Role.SUPERVISOR: {
        Action.DASHBOARD_VIEW,
        Action.MASTERS_VIEW,
        Action.ASSET_MASTER_VIEW,
        Action.ASSET_MASTER_EDIT,
        Action.GENERATE_QR_CODE,
        Action.AUDIT_REPORT_VIEW,
    },
    Role.USER: {
        Action.DASHBOARD_VIEW,
        Action.GENERATE_QR_CODE,
    },
}


def permissions_for_role(role: Optional[str]) -> PermissionSet:
    """
    Default permission set for a newly created user.

    Args:
        role: User role (superadmin/admin/auditor/supervisor/user)

    Returns:
        Normalized set allowing the role's actions; all Deny for unknown roles.
    """
    allow = ROLE_ALLOW.get(role.lower() if role else "", set())
    return {action: (Effect.ALLOW if action in allow else Effect.DENY) for action in ALL_ACTIONS}
