# src/cadeploy/core/errors.py
from __future__ import annotations
from typing import List, Optional


class DeployError(Exception):
    """Base for everything the deployment run reports per template or aborts on."""


class ConfigError(DeployError):
    pass


class MalformedTemplateError(DeployError):
    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class GroupResolutionError(DeployError):
    def __init__(self, group_name: str, reason: str, status: Optional[int] = None):
        super().__init__(f"group '{group_name}': {reason}")
        self.group_name = group_name
        self.reason = reason
        self.status = status


class AmbiguousMatchError(DeployError):
    """More than one remote policy answers to the same match name."""
    def __init__(self, match_name: str, candidates: List[dict]):
        names = ", ".join(f"{c.get('displayName')} ({c.get('id')})" for c in candidates)
        super().__init__(f"{len(candidates)} policies match '{match_name}': {names}")
        self.match_name = match_name
        self.candidates = candidates


class RemoteWriteError(DeployError):
    def __init__(self, template: str, action: str, status: Optional[int], body: str = ""):
        super().__init__(f"{action} failed for {template} (HTTP {status}): {body}")
        self.template = template
        self.action = action
        self.status = status
        self.body = body
