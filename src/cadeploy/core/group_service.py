# src/cadeploy/core/group_service.py
from __future__ import annotations
from typing import Any, Dict, List, Optional

from cadeploy.app import event_bus
from cadeploy.core.errors import GroupResolutionError
from cadeploy.core.graph_client import GraphClient
from cadeploy.http.errors import HttpError, UnauthorizedError

GROUPS_PATH = "/v1.0/groups"
MAIL_NICKNAME = "NotSet"

# Entra ID P2 service plan (AAD_PREMIUM_P2)
AADP2_SERVICE_PLAN_ID = "eec0eb4f-6444-4f95-aba0-50c24d67f998"
AADP2_MEMBERSHIP_RULE = (
    f'user.assignedPlans -any (assignedPlan.servicePlanId -eq "{AADP2_SERVICE_PLAN_ID}"'
    ' -and assignedPlan.capabilityStatus -eq "Enabled")'
)


def odata_quote(value: str) -> str:
    """Escape a string literal for an OData $filter."""
    return value.replace("'", "''")


def pending_id(name: str) -> str:
    return f"<pending:{name}>"


class GroupResolver:
    """
    Find-or-create security groups by display name.
    Permissions: Group.ReadWrite.All
    Each name hits Graph at most once per run; answers are cached.
    """
    def __init__(self, graph: GraphClient, *, dry_run: bool = False):
        self.graph = graph
        self.dry_run = dry_run
        self._cache: Dict[str, str] = {}
        self.created: List[str] = []

    def _find(self, name: str) -> Optional[str]:
        params = {
            "$filter": f"displayName eq '{odata_quote(name)}'",
            "$select": "id,displayName",
        }
        try:
            items = list(self.graph.get_paged_values(GROUPS_PATH, params=params))
        except UnauthorizedError:
            raise
        except HttpError as e:
            raise GroupResolutionError(name, f"lookup failed: {e.describe()}", e.status) from e

        # $filter eq is case-insensitive on Graph; keep exact-name hits first
        exact = [g for g in items if g.get("displayName") == name] or items
        if len(exact) > 1:
            ids = ", ".join(g.get("id", "?") for g in exact)
            raise GroupResolutionError(name, f"{len(exact)} groups share this name ({ids})")
        return exact[0].get("id") if exact else None

    def _create(self, name: str, body: Dict[str, Any]) -> str:
        if self.dry_run:
            print(f"[group_service] would create group '{name}'")
            return pending_id(name)
        try:
            res = self.graph.post_json(GROUPS_PATH, json=body)
        except UnauthorizedError:
            raise
        except HttpError as e:
            raise GroupResolutionError(name, f"create failed: {e.describe()}", e.status) from e
        gid = res.get("id")
        if not gid:
            raise GroupResolutionError(name, "create returned no id")
        self.created.append(name)
        print(f"[group_service] created group '{name}' ({gid})")
        event_bus.publish("group.created", {"name": name, "id": gid})
        return gid

    def _resolve(self, name: str, body: Dict[str, Any]) -> str:
        if name in self._cache:
            return self._cache[name]
        gid = self._find(name)
        if gid is None:
            gid = self._create(name, body)
        self._cache[name] = gid
        return gid

    def resolve_or_create(self, name: str) -> str:
        """Existing groups are returned as-is, never modified."""
        return self._resolve(name, {
            "displayName": name,
            "mailEnabled": False,
            "mailNickname": MAIL_NICKNAME,
            "securityEnabled": True,
        })

    def ensure_dynamic_group(self, name: str, membership_rule: str, description: str = "") -> str:
        body: Dict[str, Any] = {
            "displayName": name,
            "mailEnabled": False,
            "mailNickname": MAIL_NICKNAME,
            "securityEnabled": True,
            "groupTypes": ["DynamicMembership"],
            "membershipRule": membership_rule,
            "membershipRuleProcessingState": "On",
        }
        if description:
            body["description"] = description
        return self._resolve(name, body)
