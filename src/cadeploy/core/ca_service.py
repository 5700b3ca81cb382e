# src/cadeploy/core/ca_service.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cadeploy.core.errors import AmbiguousMatchError, RemoteWriteError
from cadeploy.core.graph_client import GraphClient
from cadeploy.core.group_service import odata_quote
from cadeploy.core.models import RemotePolicy
from cadeploy.http.errors import HttpError, UnauthorizedError

POLICIES_PATH = "/v1.0/identity/conditionalAccess/policies"


@dataclass
class SyncOutcome:
    action: str            # create | update
    policy_id: Optional[str]
    dry_run: bool = False


def list_matching_policies(graph: GraphClient, match_name: str) -> List[Dict[str, Any]]:
    params = {
        "$filter": f"endswith(displayName, '{odata_quote(match_name)}')",
        "$select": "id,displayName",
    }
    items = graph.get_paged_values(POLICIES_PATH, params=params)
    # endswith on Graph ignores case; re-check the same way, exact-case hits first
    folded = match_name.casefold()
    hits = [p for p in items if str(p.get("displayName", "")).casefold().endswith(folded)]
    exact = [p for p in hits if str(p.get("displayName", "")).endswith(match_name)]
    return exact or hits


def find_by_display_name(graph: GraphClient, match_name: str) -> Optional[RemotePolicy]:
    """
    Zero or one policy whose displayName ends with match_name.
    Permissions: Policy.Read.All
    """
    if not match_name.strip():
        raise ValueError("blank match name would match every policy")
    hits = list_matching_policies(graph, match_name)
    if not hits:
        return None
    if len(hits) > 1:
        raise AmbiguousMatchError(match_name, hits)
    return RemotePolicy.from_graph(hits[0])


def create_policy(graph: GraphClient, payload: Dict[str, Any]) -> Dict[str, Any]:
    return graph.post_json(POLICIES_PATH, json=payload)


def update_policy(graph: GraphClient, policy_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return graph.patch_json(f"{POLICIES_PATH}/{policy_id}", json=payload)


def sync_policy(
    graph: GraphClient,
    payload: Dict[str, Any],
    existing: Optional[RemotePolicy],
    *,
    template: str = "",
    dry_run: bool = False,
) -> SyncOutcome:
    """
    No match -> POST a new policy. One match -> PATCH that policy.
    Permissions: Policy.ReadWrite.ConditionalAccess
    """
    action = "update" if existing else "create"
    if dry_run:
        return SyncOutcome(action, existing.id if existing else None, dry_run=True)

    try:
        if existing:
            update_policy(graph, existing.id, payload)
            return SyncOutcome(action, existing.id)
        res = create_policy(graph, payload)
    except UnauthorizedError:
        raise
    except HttpError as e:
        raise RemoteWriteError(template, action, e.status, e.body_snippet or str(e)) from e
    return SyncOutcome(action, res.get("id"))
