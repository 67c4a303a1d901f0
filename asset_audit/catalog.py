"""
asset_audit/catalog.py

Permission catalog: the closed, versioned list of actions and their grouping.

Single source of truth for action identifiers. Any change to the actions or
groups below must bump CATALOG_VERSION so stored permission sets can be
recognised as stale.

Pure data - no FastAPI imports, no database access.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


CATALOG_VERSION = 3


# ============================================================================
# Actions
# ============================================================================

class Action(str, Enum):
    """Permission-gated actions, in catalog order."""

    ALL_ACCESS = "allAccess"

    DASHBOARD_VIEW = "dashboard:view"
    DASHBOARD_EDIT = "dashboard:edit"

    MASTERS_VIEW = "masters:view"
    MASTERS_EDIT = "masters:edit"

    USER_MASTER_VIEW = "userMaster:view"
    USER_MASTER_EDIT = "userMaster:edit"

    ROLE_MASTER_VIEW = "roleMaster:view"
    ROLE_MASTER_EDIT = "roleMaster:edit"

    ASSET_MASTER_VIEW = "assetMaster:view"
    ASSET_MASTER_EDIT = "assetMaster:edit"

    LOCATION_MASTER_VIEW = "locationMaster:view"
    LOCATION_MASTER_EDIT = "locationMaster:edit"

    STATE_MASTER_VIEW = "stateMaster:view"
    STATE_MASTER_EDIT = "stateMaster:edit"

    CITY_MASTER_VIEW = "cityMaster:view"
    CITY_MASTER_EDIT = "cityMaster:edit"

    AREA_MASTER_VIEW = "areaMaster:view"
    AREA_MASTER_EDIT = "areaMaster:edit"

    DEPARTMENT_MASTER_VIEW = "departmentMaster:view"
    DEPARTMENT_MASTER_EDIT = "departmentMaster:edit"

    BUILDING_MASTER_VIEW = "buildingMaster:view"
    BUILDING_MASTER_EDIT = "buildingMaster:edit"

    FLOOR_MASTER_VIEW = "floorMaster:view"
    FLOOR_MASTER_EDIT = "floorMaster:edit"

    GENERATE_QR_CODE = "generateQrCode"

    AUDIT_REPORT_VIEW = "auditReport:view"
    AUDIT_REPORT_EDIT = "auditReport:edit"


class Effect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


ALL_ACTIONS: Tuple[Action, ...] = tuple(Action)

# Everything except the derived allAccess indicator
NON_ALL_ACCESS_ACTIONS: Tuple[Action, ...] = tuple(a for a in Action if a is not Action.ALL_ACCESS)


# ============================================================================
# Groups
# ============================================================================

@dataclass(frozen=True)
class Group:
    """A named cluster of actions shown and bulk-edited together."""
    key: str
    label: str
    actions: Tuple[Action, ...]


def _pair(label: str, key: str, prefix: str) -> Group:
    return Group(key, label, (Action(f"{prefix}:view"), Action(f"{prefix}:edit")))


GROUPS: Tuple[Group, ...] = (
    Group("core", "Core", (Action.GENERATE_QR_CODE,)),
    _pair("Dashboard", "dashboard", "dashboard"),
    _pair("Masters (Global)", "masters", "masters"),
    _pair("User Master", "user", "userMaster"),
    _pair("Role Master", "role", "roleMaster"),
    _pair("Asset Master", "asset", "assetMaster"),
    _pair("Location Master", "location", "locationMaster"),
    _pair("State Master", "state", "stateMaster"),
    _pair("City Master", "city", "cityMaster"),
    _pair("Area Master", "area", "areaMaster"),
    _pair("Department Master", "department", "departmentMaster"),
    _pair("Building Master", "building", "buildingMaster"),
    _pair("Floor Master", "floor", "floorMaster"),
    _pair("Audit Reports", "audit", "auditReport"),
)

GROUPS_BY_KEY: Dict[str, Group] = {g.key: g for g in GROUPS}


def get_group(key: str) -> Group:
    """
    Look up a group by key.

    Raises:
        KeyError: If no group has that key
    """
    return GROUPS_BY_KEY[key]


# ============================================================================
# Labels
# ============================================================================

_MODULE_LABELS = {
    "dashboard": "Dashboard",
    "masters": "Masters (Global)",
    "userMaster": "User Master",
    "roleMaster": "Role Master",
    "assetMaster": "Asset Master",
    "locationMaster": "Location Master",
    "stateMaster": "State Master",
    "cityMaster": "City Master",
    "areaMaster": "Area Master",
    "departmentMaster": "Department Master",
    "buildingMaster": "Building Master",
    "floorMaster": "Floor Master",
    "auditReport": "Audit Reports",
}


def humanize(action: Action) -> str:
    """Display label for an action, e.g. "User Master — Edit"."""
    if action is Action.ALL_ACCESS:
        return "All Access"
    if action is Action.GENERATE_QR_CODE:
        return "Generate QR Code"
    module, _, op = action.value.partition(":")
    op_label = "View" if op == "view" else "Edit"
    return f"{_MODULE_LABELS.get(module, module)} — {op_label}"
