"""
asset_audit/permission_editor.py

Mutation rules for interactively editing a user's permission set.

Every operation takes a PermissionSet and returns a new one; nothing is
mutated in place and nothing is persisted here (the caller owns storage).

allAccess is a summary of the other actions. After each mutation resync()
re-derives it in a single pass: Allow when every other action is Allow,
Deny otherwise. resync() never cascades back onto the other actions.

The only cascade is the explicit one: toggling allAccess on grants every
action. Toggling it off changes allAccess alone and the result is left as
the user chose it, so "summary off, grants intact" is a reachable state until
the next edit re-derives it.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Union

try:
    from asset_audit.catalog import ALL_ACTIONS, NON_ALL_ACCESS_ACTIONS, Action, Effect, get_group
    from asset_audit.errors import ValidationError
    from asset_audit.rbac import PermissionSet, normalize, parse_action
except ModuleNotFoundError:
    from catalog import ALL_ACTIONS, NON_ALL_ACCESS_ACTIONS, Action, Effect, get_group
    from errors import ValidationError
    from rbac import PermissionSet, normalize, parse_action

logger = logging.getLogger(__name__)


def _flip(effect: Effect) -> Effect:
    return Effect.DENY if effect is Effect.ALLOW else Effect.ALLOW


def _coerce_effect(effect: Union[Effect, str]) -> Effect:
    try:
        return Effect(effect)
    except ValueError:
        raise ValidationError(f"Invalid effect: {effect!r}") from None


def resync(permissions: PermissionSet) -> PermissionSet:
    """
    Re-derive allAccess from the other actions.

    Pure single pass producing a fixed point: resync(resync(p)) == resync(p).
    Only allAccess can change.
    """
    all_others = all(permissions.get(a) is Effect.ALLOW for a in NON_ALL_ACCESS_ACTIONS)
    derived = Effect.ALLOW if all_others else Effect.DENY
    if permissions.get(Action.ALL_ACCESS) is derived:
        return dict(permissions)
    return {**permissions, Action.ALL_ACCESS: derived}


def toggle(permissions: PermissionSet, action: Union[Action, str]) -> PermissionSet:
    """
    Flip one action's effect.

    Enabling allAccess grants every action. Disabling allAccess only turns the
    summary off; the other actions keep their effect.
    """
    action = parse_action(action)
    current = normalize(permissions)
    new_effect = _flip(current[action])

    if action is Action.ALL_ACCESS:
        if new_effect is Effect.ALLOW:
            logger.debug("[PERMS] allAccess enabled, granting every action")
            return {a: Effect.ALLOW for a in ALL_ACTIONS}
        return {**current, Action.ALL_ACCESS: Effect.DENY}

    return resync({**current, action: new_effect})


def set_group(
    permissions: PermissionSet,
    group: Union[str, Iterable[Union[Action, str]]],
    effect: Union[Effect, str],
) -> PermissionSet:
    """
    Set every action of a group (and only those) to `effect`.

    Args:
        permissions: Current set
        group: Group key (e.g. "asset") or an iterable of actions
        effect: Allow or Deny

    Raises:
        ValidationError: Unknown group key or effect
        UnknownActionError: An action outside the catalog
    """
    effect = _coerce_effect(effect)
    if isinstance(group, str):
        try:
            members = get_group(group).actions
        except KeyError:
            raise ValidationError(f"Unknown permission group: {group!r}") from None
    else:
        members = tuple(parse_action(a) for a in group)

    current = normalize(permissions)
    for action in members:
        current[action] = effect
    return resync(current)


def set_all(permissions: PermissionSet, effect: Union[Effect, str]) -> PermissionSet:
    """Set every catalog action, allAccess included, to `effect`."""
    effect = _coerce_effect(effect)
    return resync({action: effect for action in ALL_ACTIONS})


def apply_edit(permissions: PermissionSet, op: Mapping[str, Any]) -> PermissionSet:
    """
    Apply one serialized edit operation.

    Supported shapes:
        {"op": "toggle", "action": "assetMaster:edit"}
        {"op": "group", "group": "asset", "effect": "Allow"}
        {"op": "all", "effect": "Deny"}

    Raises:
        ValidationError: Unknown op or missing field
    """
    kind = op.get("op")
    if kind == "toggle":
        if not op.get("action"):
            raise ValidationError("toggle requires an action")
        return toggle(permissions, op["action"])
    if kind == "group":
        if not op.get("group") or not op.get("effect"):
            raise ValidationError("group edit requires a group and an effect")
        return set_group(permissions, op["group"], op["effect"])
    if kind == "all":
        if not op.get("effect"):
            raise ValidationError("bulk edit requires an effect")
        return set_all(permissions, op["effect"])
    raise ValidationError(f"Unknown permission edit: {kind!r}")
