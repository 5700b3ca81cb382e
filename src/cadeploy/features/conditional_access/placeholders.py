# src/cadeploy/features/conditional_access/placeholders.py
from __future__ import annotations
import copy
import re
import warnings
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from cadeploy.core.models import PolicyTemplate, ResolvedGroups, SequenceContext


class PlaceholderWarning(UserWarning):
    """Template uses a token we don't know how to resolve."""


class Placeholder(Enum):
    # (token, ResolvedGroups attribute, users list it belongs to)
    PREFIX = ("<PREFIX>", None, None)
    AADP2_GROUP = ("<AADP2Group>", "aadp2", "includeGroups")
    EXCLUSION_GROUP = ("<ExclusionGroup>", "exclusion", "excludeGroups")
    SYNC_ACCOUNTS_GROUP = ("<SynchronizationServiceAccountsGroup>", "sync_accounts", "excludeGroups")
    EMERGENCY_ACCESS_GROUP = ("<EmergencyAccessAccountsGroup>", "emergency_access", "excludeGroups")

    def __init__(self, token: str, group_attr: Optional[str], list_key: Optional[str]):
        self.token = token
        self.group_attr = group_attr
        self.list_key = list_key

    def resolve(self, ids: ResolvedGroups) -> str:
        return getattr(ids, self.group_attr)

    @classmethod
    def for_list(cls, list_key: str) -> List["Placeholder"]:
        return [p for p in cls if p.list_key == list_key]

    @classmethod
    def by_token(cls, token: str) -> Optional["Placeholder"]:
        for p in cls:
            if p.token == token:
                return p
        return None


_TOKEN_RE = re.compile(r"^<[^<>]+>$")
GROUP_LIST_KEYS = ("includeGroups", "excludeGroups")


def _users(doc: Dict[str, Any]) -> Dict[str, Any]:
    return ((doc.get("conditions") or {}).get("users") or {})


def _substitute_list(values: List[Any], list_key: str, ids: ResolvedGroups, source: str) -> List[Any]:
    known = {ph.token for ph in Placeholder.for_list(list_key)}
    for v in values:
        if isinstance(v, str) and _TOKEN_RE.match(v) and v not in known:
            warnings.warn(
                f"{source}: unrecognized token {v} in {list_key} left as-is",
                PlaceholderWarning, stacklevel=3,
            )

    out = list(values)
    for ph in Placeholder.for_list(list_key):
        if ph.token in out:
            out = [v for v in out if v != ph.token]
            out.append(ph.resolve(ids))
    return out


def substitute(template: PolicyTemplate, seq: SequenceContext, ids: ResolvedGroups) -> Dict[str, Any]:
    """
    Build the Graph payload for one template.

    The template document is deep-copied; only displayName and the
    conditions.users include/exclude group lists change. Placeholders a
    template doesn't use are simply not substituted.
    """
    payload = copy.deepcopy(template.document)

    name = payload.get("displayName")
    if isinstance(name, str) and Placeholder.PREFIX.token in name:
        payload["displayName"] = name.replace(Placeholder.PREFIX.token, seq.prefix_and_number)
    else:
        warnings.warn(
            f"{template.source}: displayName has no {Placeholder.PREFIX.token} token, used verbatim",
            PlaceholderWarning, stacklevel=2,
        )

    users = _users(payload)
    for key in GROUP_LIST_KEYS:
        if isinstance(users.get(key), list):
            users[key] = _substitute_list(users[key], key, ids, template.source)
    return payload


def match_name(display_name: str) -> str:
    """'CA07 - Block Legacy Auth' -> 'Block Legacy Auth'"""
    head, sep, tail = display_name.partition("-")
    return tail.strip() if sep else display_name.strip()


def find_placeholders(document: Dict[str, Any]) -> Set[Placeholder]:
    found: Set[Placeholder] = set()
    name = document.get("displayName")
    if isinstance(name, str) and Placeholder.PREFIX.token in name:
        found.add(Placeholder.PREFIX)
    users = _users(document)
    for key in GROUP_LIST_KEYS:
        for v in users.get(key) or []:
            ph = Placeholder.by_token(v) if isinstance(v, str) else None
            if ph is not None and ph.list_key == key:
                found.add(ph)
    return found
