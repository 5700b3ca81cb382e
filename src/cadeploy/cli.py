"""cadeploy CLI: push Conditional Access templates into an Entra tenant."""

import functools
import pathlib

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cadeploy import __version__
from cadeploy.config.loader import load_config
from cadeploy.core.auth import AuthError
from cadeploy.core.errors import DeployError
from cadeploy.http.errors import HttpError

console = Console()


class _Dbg:
    def debug(self, msg):
        print("[HTTP]", msg)


def _deploy_options(fn):
    options = [
        click.option("--prefix", help="Run prefix, e.g. CA (CADEPLOY_PREFIX)"),
        click.option("--templates", "templates_folder", type=click.Path(file_okay=False),
                     help="Folder of JSON policy templates (CADEPLOY_TEMPLATES)"),
        click.option("--tenant-id", help="Entra tenant id (CADEPLOY_TENANT_ID)"),
        click.option("--client-id", help="App registration client id (CADEPLOY_CLIENT_ID)"),
        click.option("--exclusion-prefix", "exclusion_group_prefix",
                     help="Per-policy exclusion group prefix [PREFIX_Exclusion_]"),
        click.option("--aadp2-group", help="Entra ID P2 cohort group [PREFIX_AADP2]"),
        click.option("--sync-group", "sync_accounts_group", help="Sync service accounts group"),
        click.option("--emergency-group", "emergency_access_group", help="Emergency access accounts group"),
        click.option("--pacing", "pacing_seconds", type=float, help="Seconds between policy writes [5]"),
        click.option("--start", "start_sequence", type=int, help="First sequence number [1]"),
        click.option("--config", "settings_path", type=click.Path(dir_okay=False),
                     help="appsettings.json path [config/appsettings.json]"),
        click.option("--report", "report_path", type=click.Path(dir_okay=False),
                     help="Write the JSON run report here"),
        click.option("--verbose", "-v", is_flag=True, help="Log every HTTP call"),
    ]
    for opt in reversed(options):
        fn = opt(fn)
    return fn


@click.group()
@click.version_option(version=__version__)
def main():
    """cadeploy: deploy Conditional Access policy templates.

    Templates are JSON files using <PREFIX>, <AADP2Group>, <ExclusionGroup>,
    <SynchronizationServiceAccountsGroup> and <EmergencyAccessAccountsGroup>.
    Existing policies are matched by the name after the first '-'.
    """


def _run(dry_run: bool, settings_path, report_path, verbose, **overrides) -> int:
    from cadeploy.app import event_bus
    from cadeploy.app.deployer import Deployer
    from cadeploy.core.auth import connect
    from cadeploy.core.graph_client import GraphClient
    from cadeploy.features.conditional_access.templates import load_templates
    from cadeploy.report import summary

    cfg = load_config(overrides, settings_path=pathlib.Path(settings_path) if settings_path else None)
    templates = load_templates(cfg.templates_folder)
    if not templates:
        console.print(f"[yellow]No *.json templates in {cfg.templates_folder}[/]")
        return 0

    event_bus.subscribe(
        "template.started",
        lambda p: console.print(f"[dim]{p['sequence']}[/] {escape(p['template'])}"),
    )
    session = connect(cfg.auth)
    graph = GraphClient(session.token_provider, logger=_Dbg() if verbose else None, http_config=cfg.http)

    results = Deployer(graph, cfg, dry_run=dry_run).run(templates)
    summary.render(results, console, dry_run=dry_run)
    summary.write_report(
        results, tenant_id=cfg.auth.tenant_id, prefix=cfg.prefix, dry_run=dry_run,
        path=pathlib.Path(report_path) if report_path else None,
    )
    return summary.exit_code(results)


def _guarded(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        ctx = click.get_current_context()
        try:
            code = fn(*args, **kwargs)
        except AuthError as ex:
            console.print(f"[bold red]Authentication failed[/] ({ex.code}): {ex}")
            console.print(f"  hint: {ex.hint}")
            ctx.exit(2)
        except DeployError as ex:
            console.print(f"[bold red]Aborted:[/] {escape(str(ex))}")
            ctx.exit(2)
        except HttpError as ex:
            console.print(f"[bold red]Aborted:[/] {escape(ex.describe())}")
            ctx.exit(2)
        ctx.exit(code)
    return wrapper


@main.command()
@_deploy_options
@_guarded
def deploy(**kwargs):
    """Create or update every policy in the templates folder."""
    return _run(False, **kwargs)


@main.command()
@_deploy_options
@_guarded
def plan(**kwargs):
    """Dry run: look everything up, report create/update, write nothing."""
    return _run(True, **kwargs)


@main.command("templates")
@click.argument("folder", type=click.Path(exists=True, file_okay=False))
@_guarded
def list_templates(folder: str):
    """List templates in deployment order and the placeholders each uses."""
    from cadeploy.features.conditional_access.placeholders import find_placeholders
    from cadeploy.features.conditional_access.templates import load_templates
    from cadeploy.core.models import PolicyTemplate

    table = Table(title=f"Templates in {folder}")
    table.add_column("#", style="dim", width=4)
    table.add_column("File", style="cyan")
    table.add_column("displayName")
    table.add_column("Placeholders")

    bad = 0
    n = 0
    for item in load_templates(pathlib.Path(folder)):
        if isinstance(item, PolicyTemplate):
            n += 1
            used = sorted(p.token for p in find_placeholders(item.document))
            table.add_row(f"{n:02d}", escape(item.source), escape(item.display_name), " ".join(used))
        else:
            bad += 1
            table.add_row("--", escape(item.source), f"[red]malformed: {escape(item.reason)}[/]", "")
    console.print(table)
    return 1 if bad else 0


if __name__ == "__main__":
    main()
