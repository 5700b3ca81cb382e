# src/cadeploy/app/deployer.py
from __future__ import annotations
import warnings
from typing import Dict, Iterable, List, Optional

from cadeploy.app import event_bus
from cadeploy.config.loader import DeployConfig
from cadeploy.core import ca_service
from cadeploy.core.errors import (
    AmbiguousMatchError, GroupResolutionError, MalformedTemplateError, RemoteWriteError
)
from cadeploy.core.graph_client import GraphClient
from cadeploy.core.group_service import AADP2_MEMBERSHIP_RULE, GroupResolver
from cadeploy.core.models import (
    PolicyTemplate, ResolvedGroups, SequenceGenerator, TemplateResult
)
from cadeploy.features.conditional_access.placeholders import match_name, substitute
from cadeploy.features.conditional_access.templates import LoadedTemplate
from cadeploy.http.errors import HttpError, UnauthorizedError
from cadeploy.http.throttle import Pacer


class _Stage(Exception):
    """Carries the failing step name along with the underlying error."""
    def __init__(self, stage: str, error: Exception):
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class Deployer:
    """
    Walks templates in order: number -> exclusion group -> substitute ->
    lookup -> create/update -> pace.

    A failing template is recorded and the run moves on. Auth failures and
    shared-group failures end the run.
    """
    def __init__(
        self,
        graph: GraphClient,
        config: DeployConfig,
        *,
        groups: Optional[GroupResolver] = None,
        sequence: Optional[SequenceGenerator] = None,
        pacer: Optional[Pacer] = None,
        dry_run: bool = False,
    ):
        self.graph = graph
        self.config = config
        self.dry_run = dry_run
        self.groups = groups or GroupResolver(graph, dry_run=dry_run)
        self.sequence = sequence or SequenceGenerator(config.prefix, config.start_sequence)
        self.pacer = pacer or Pacer(config.pacing_seconds)
        self._shared: Optional[Dict[str, str]] = None

    # ---------- shared groups ----------
    def resolve_shared_groups(self) -> Dict[str, str]:
        """AADP2 cohort, sync accounts, break-glass: once per run."""
        if self._shared is None:
            cfg = self.config
            self._shared = {
                "aadp2": self.groups.ensure_dynamic_group(
                    cfg.aadp2_group, AADP2_MEMBERSHIP_RULE,
                    description="Users licensed for Entra ID P2",
                ),
                "sync_accounts": self.groups.resolve_or_create(cfg.sync_accounts_group),
                "emergency_access": self.groups.resolve_or_create(cfg.emergency_access_group),
            }
            print(f"[deployer] shared groups ready: {', '.join(sorted(self._shared))}")
        return self._shared

    # ---------- one template ----------
    def deploy_one(self, template: PolicyTemplate) -> TemplateResult:
        seq = self.sequence.next()
        result = TemplateResult(
            template=template.source, action="error",
            sequence=seq.prefix_and_number, dry_run=self.dry_run,
        )
        event_bus.publish("template.started", {"template": template.source, "sequence": seq.prefix_and_number})
        shared = self.resolve_shared_groups()
        try:
            exclusion_name = self.config.exclusion_group_name(seq.prefix_and_number)
            try:
                exclusion_id = self.groups.resolve_or_create(exclusion_name)
            except GroupResolutionError as e:
                raise _Stage("group", e) from e

            ids = ResolvedGroups(exclusion=exclusion_id, **shared)
            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always")
                payload = substitute(template, seq, ids)
            for w in caught:
                print(f"[deployer] warning: {w.message}")
            if caught:
                result.extra["warnings"] = [str(w.message) for w in caught]

            result.display_name = payload.get("displayName", "")
            result.match_name = match_name(result.display_name)
            if not result.match_name:
                # endswith('') would hit every policy in the tenant
                raise _Stage("parse", MalformedTemplateError(
                    template.source, "'displayName' has no policy name after the first '-'"))

            try:
                existing = ca_service.find_by_display_name(self.graph, result.match_name)
            except UnauthorizedError:
                raise
            except (AmbiguousMatchError, HttpError) as e:
                raise _Stage("lookup", e) from e

            try:
                outcome = ca_service.sync_policy(
                    self.graph, payload, existing,
                    template=template.source, dry_run=self.dry_run,
                )
            except RemoteWriteError as e:
                raise _Stage("write", e) from e

            result.action = outcome.action
            result.policy_id = outcome.policy_id
            verb = f"would {outcome.action}" if outcome.dry_run else f"{outcome.action}d"
            print(f"[deployer] {template.source}: {verb} '{result.display_name}'")
        except _Stage as s:
            result.stage = s.stage
            result.error = str(s.error)
            result.status = getattr(s.error, "status", None)
            print(f"[deployer] {template.source}: {s.stage} failed: {s.error}")

        event_bus.publish("template.done", result)
        return result

    # ---------- batch ----------
    def run(self, templates: Iterable[LoadedTemplate]) -> List[TemplateResult]:
        items = list(templates)
        if any(isinstance(t, PolicyTemplate) for t in items):
            # fatal if these fail; every template depends on them
            self.resolve_shared_groups()

        results: List[TemplateResult] = []
        touched_remote = False
        for item in items:
            if isinstance(item, MalformedTemplateError):
                res = TemplateResult(
                    template=item.source, action="skip", stage="parse",
                    error=item.reason, dry_run=self.dry_run,
                )
                event_bus.publish("template.done", res)
                results.append(res)
                continue
            if touched_remote:
                self.pacer.wait()
            results.append(self.deploy_one(item))
            touched_remote = True

        event_bus.publish("run.done", results)
        return results
