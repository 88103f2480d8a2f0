"""
TagGuard CLI

Commands for evaluating tagging policies against a resource inventory:
- scan: Run an initiative over an inventory and print the compliance report
- validate: Bind an initiative and report configuration errors
- builtin: Print the built-in tagging rules and initiative
"""

import json
import logging
from typing import Any, Optional

import click
import yaml
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tagguard.config import ScanSettings
from tagguard.exceptions import TagGuardError
from tagguard.governance import (
    ComplianceEngine,
    ComplianceReport,
    ComplianceScanner,
    Initiative,
    PolicyRule,
    Verdict,
    builtin_rules,
    load_assignment,
    load_initiative,
    load_rules,
    tagging_initiative,
)
from tagguard.inventory import Inventory
from tagguard.observability import configure_tracing, setup_metrics, start_metrics_server

console = Console()

EXIT_BLOCKED = 1
EXIT_CONFIG_ERROR = 2

_VERDICT_STYLES = {
    Verdict.compliant: "green",
    Verdict.non_compliant: "yellow",
    Verdict.non_compliant_blocking: "bold red",
    Verdict.skipped: "dim",
    Verdict.modified: "cyan",
    Verdict.error: "red",
}


def _verdict_label(verdict: Verdict) -> str:
    style = _VERDICT_STYLES.get(verdict, "white")
    return f"[{style}]{verdict.value}[/{style}]"


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _output_yaml(data: object) -> None:
    """Print data as YAML to stdout."""
    click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))


def _load_definitions(
    rules_path: Optional[str],
    initiative_path: Optional[str],
) -> tuple[list[PolicyRule], Initiative]:
    rules = load_rules(rules_path) if rules_path else builtin_rules()
    initiative = load_initiative(initiative_path) if initiative_path else tagging_initiative()
    return rules, initiative


def _report_data(report: ComplianceReport) -> dict[str, Any]:
    return {
        "report_id": report.report_id,
        "initiative": report.initiative,
        "complete": report.complete,
        "compliant": report.compliant,
        "summary": report.summary().model_dump(),
        "timed_out": report.timed_out,
        "failed": report.failed,
        "resources": report.to_mapping(),
    }


def _print_report(report: ComplianceReport) -> None:
    console.print(f"\n[bold blue]Tag compliance: {escape(report.initiative)}[/bold blue]\n")
    table = Table(box=box.ROUNDED)
    table.add_column("Resource", style="cyan", no_wrap=True)
    table.add_column("Rule")
    table.add_column("Verdict")
    table.add_column("Details", style="dim")

    for resource_id in sorted(report.resources):
        resource_report = report.resources[resource_id]
        for result in resource_report.results:
            details = result.error or result.reason or ""
            table.add_row(
                escape(resource_id),
                escape(result.reference_id or result.rule_name),
                _verdict_label(result.verdict),
                escape(details),
            )
        for conflict in resource_report.conflicts:
            table.add_row(
                escape(resource_id),
                escape(conflict.dropped_rule or ""),
                "[yellow]patch_conflict[/yellow]",
                escape(f"'{conflict.key}' already patched by {conflict.kept_rule}"),
            )

    console.print(table)
    summary = report.summary()
    console.print(
        f"\n  Resources: {summary.resources}  Compliant: {summary.compliant}  "
        f"Non-compliant: {summary.non_compliant}  Blocked: {summary.blocked}  "
        f"Errors: {summary.errored}  Patched: {summary.patched}"
    )
    if report.timed_out:
        console.print(f"  [red]Timed out: {escape(', '.join(report.timed_out))}[/red]")
    for resource_id, error in sorted(report.failed.items()):
        console.print(f"  [red]Failed: {escape(resource_id)}: {escape(error)}[/red]")
    console.print()


@click.group()
@click.option("--log-level", default=None, help="Logging level (default: TAGGUARD_LOG_LEVEL or INFO).")
@click.pass_context
def app(ctx: click.Context, log_level: Optional[str]):
    """Evaluate resource-tagging policies over a resource inventory."""
    settings = ScanSettings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@app.command()
@click.option("--inventory", "inventory_path", required=True, type=click.Path(exists=True),
              help="Inventory file (YAML or JSON).")
@click.option("--rules", "rules_path", type=click.Path(exists=True), default=None,
              help="Rules file or directory. Defaults to the built-in tagging rules.")
@click.option("--initiative", "initiative_path", type=click.Path(exists=True), default=None,
              help="Initiative file. Defaults to the built-in tagging initiative.")
@click.option("--assignment", "assignment_path", type=click.Path(exists=True), default=None,
              help="Assignment parameter values.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["table", "json", "yaml"]),
    default="table",
    help="Output format (table, json, or yaml).",
)
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON (shorthand for --format json).")
@click.option("--workers", type=int, default=None, help="Concurrent resource evaluations.")
@click.option("--deadline", type=float, default=None, help="Scan deadline in seconds.")
@click.option("--after-modify", is_flag=True, default=False,
              help="Evaluate audit/deny rules against the patched tags.")
@click.option("--metrics-port", type=int, default=None,
              help="Serve Prometheus metrics on this port during the scan.")
@click.pass_obj
def scan(
    settings: ScanSettings,
    inventory_path: str,
    rules_path: Optional[str],
    initiative_path: Optional[str],
    assignment_path: Optional[str],
    fmt: str,
    json_flag: bool,
    workers: Optional[int],
    deadline: Optional[float],
    after_modify: bool,
    metrics_port: Optional[int],
):
    """Scan an inventory and print the compliance report.

    Exits with status 1 when any resource is blocked by a deny rule,
    2 on configuration errors.
    """
    if json_flag:
        fmt = "json"

    try:
        rules, initiative = _load_definitions(rules_path, initiative_path)
        assignment = load_assignment(assignment_path) if assignment_path else {}
        bound = initiative.bind(rules, assignment)
        inventory = Inventory.from_file(inventory_path)
    except TagGuardError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)

    if settings.console_tracing:
        configure_tracing(service_name=settings.service_name, console=True)
    metrics = setup_metrics() if settings.metrics_enabled else None
    if metrics is not None and metrics_port:
        start_metrics_server(metrics_port)

    engine = ComplianceEngine(
        bound,
        evaluate_after_modify=after_modify or settings.evaluate_after_modify,
        metrics=metrics,
    )
    scanner = ComplianceScanner(
        engine,
        max_workers=workers or settings.max_workers,
        deadline_seconds=deadline if deadline is not None else settings.deadline_seconds,
        metrics=metrics,
    )
    report = scanner.scan(inventory)

    if fmt == "json":
        _output_json(_report_data(report))
    elif fmt == "yaml":
        _output_yaml(_report_data(report))
    else:
        _print_report(report)

    if report.summary().blocked:
        raise SystemExit(EXIT_BLOCKED)


@app.command()
@click.option("--rules", "rules_path", type=click.Path(exists=True), default=None,
              help="Rules file or directory. Defaults to the built-in tagging rules.")
@click.option("--initiative", "initiative_path", type=click.Path(exists=True), default=None,
              help="Initiative file. Defaults to the built-in tagging initiative.")
@click.option("--assignment", "assignment_path", type=click.Path(exists=True), default=None,
              help="Assignment parameter values.")
def validate(rules_path: Optional[str], initiative_path: Optional[str], assignment_path: Optional[str]):
    """Bind an initiative and report configuration errors."""
    try:
        rules, initiative = _load_definitions(rules_path, initiative_path)
        assignment = load_assignment(assignment_path) if assignment_path else {}
        bound = initiative.bind(rules, assignment)
    except TagGuardError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(EXIT_CONFIG_ERROR)

    for rule in bound.rules:
        if rule.error is not None:
            click.echo(f"BROKEN   {rule.reference_id}: {rule.error}")
        else:
            click.echo(f"OK       {rule.reference_id} ({rule.effect.value})")

    if bound.broken:
        raise SystemExit(EXIT_CONFIG_ERROR)


@app.command()
@click.option(
    "--format", "fmt",
    type=click.Choice(["json", "yaml"]),
    default="yaml",
    help="Output format.",
)
def builtin(fmt: str):
    """Print the built-in tagging rules and initiative."""
    data = {
        "rules": [rule.to_dict() for rule in builtin_rules()],
        "initiative": tagging_initiative().model_dump(mode="json", exclude_none=True),
    }
    if fmt == "json":
        _output_json(data)
    else:
        _output_yaml(data)


if __name__ == "__main__":
    app()
