from __future__ import annotations
import datetime, pathlib
from collections import Counter
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cadeploy.core.cache import runs_dir, write_json_atomic
from cadeploy.core.models import TemplateResult

_ACTION_STYLE = {
    "create": "green",
    "update": "cyan",
    "skip": "yellow",
    "error": "red",
}


def _now_stamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def counts(results: List[TemplateResult]) -> Dict[str, int]:
    c = Counter(r.action for r in results)
    return {a: c.get(a, 0) for a in ("create", "update", "skip", "error")}


def exit_code(results: List[TemplateResult]) -> int:
    return 0 if all(r.ok for r in results) else 1


def build_table(results: List[TemplateResult], *, dry_run: bool = False) -> Table:
    title = "Conditional Access deployment" + (" (dry run)" if dry_run else "")
    table = Table(title=title)
    table.add_column("#", style="dim")
    table.add_column("Template")
    table.add_column("Policy")
    table.add_column("Action")
    table.add_column("Detail", overflow="fold")
    for r in results:
        style = _ACTION_STYLE.get(r.action, "")
        action = f"would {r.action}" if (r.dry_run and r.ok) else r.action
        if r.error:
            detail = f"{r.stage}: {r.error}"
        else:
            detail = r.policy_id or ""
        table.add_row(
            r.sequence or "-", escape(r.template), escape(r.display_name),
            f"[{style}]{action}[/]", escape(detail),
        )
    return table


def render(results: List[TemplateResult], console: Optional[Console] = None, *, dry_run: bool = False) -> None:
    console = console or Console()
    console.print(build_table(results, dry_run=dry_run))
    c = counts(results)
    console.print(
        f"created={c['create']} updated={c['update']} skipped={c['skip']} errors={c['error']}"
    )


def write_report(
    results: List[TemplateResult],
    *,
    tenant_id: str,
    prefix: str,
    dry_run: bool = False,
    path: Optional[pathlib.Path] = None,
) -> pathlib.Path:
    """JSON record of the run, next to earlier runs unless a path is given."""
    out: Dict[str, Any] = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "tenant_id": tenant_id,
        "prefix": prefix,
        "dry_run": dry_run,
        "counts": counts(results),
        "templates": [r.as_dict() for r in results],
    }
    target = pathlib.Path(path) if path else runs_dir(tenant_id) / f"run_{_now_stamp()}.json"
    write_json_atomic(target, out)
    print(f"[report] wrote {target}")
    return target
