from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

@dataclass(frozen=True)
class PolicyTemplate:
    source: str
    document: Dict[str, Any]

    @property
    def display_name(self) -> str:
        return str(self.document.get("displayName") or "")

@dataclass(frozen=True)
class SequenceContext:
    prefix: str
    number: int

    @property
    def prefix_and_number(self) -> str:
        return f"{self.prefix}{self.number:02d}"

class SequenceGenerator:
    """Hands out CA01, CA02, ... in call order."""
    def __init__(self, prefix: str, start: int = 1):
        self.prefix = prefix
        self._next = start

    def next(self) -> SequenceContext:
        seq = SequenceContext(self.prefix, self._next)
        self._next += 1
        return seq

@dataclass(frozen=True)
class ResolvedGroups:
    aadp2: str
    exclusion: str
    sync_accounts: str
    emergency_access: str

@dataclass(frozen=True)
class RemotePolicy:
    id: str
    display_name: str

    @classmethod
    def from_graph(cls, item: Dict[str, Any]) -> "RemotePolicy":
        return cls(id=item.get("id", ""), display_name=item.get("displayName", ""))

@dataclass
class TemplateResult:
    template: str
    action: str                          # create | update | skip | error
    display_name: str = ""
    match_name: str = ""
    policy_id: Optional[str] = None
    sequence: Optional[str] = None
    stage: Optional[str] = None          # where an error happened
    error: Optional[str] = None
    status: Optional[int] = None
    dry_run: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.action in ("create", "update")

    def as_dict(self) -> Dict[str, Any]:
        out = {
            "template": self.template,
            "action": self.action,
            "displayName": self.display_name,
            "matchName": self.match_name,
            "policyId": self.policy_id,
            "sequence": self.sequence,
            "dryRun": self.dry_run,
        }
        if self.error:
            out.update({"stage": self.stage, "error": self.error, "status": self.status})
        if self.extra:
            out.update(self.extra)
        return out
