"""Command-line interface for Policy Gate."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from policy_gate import __version__
from policy_gate.analyzers.base import parse_findings
from policy_gate.config import load_config, validate_config
from policy_gate.errors import PolicyGateError, UsageLimitExceededError
from policy_gate.models.evaluation import EvaluationResult
from policy_gate.models.findings import Finding
from policy_gate.models.policy import EnforcementTier
from policy_gate.models.review import ReviewRequest, ReviewResult
from policy_gate.policy.evaluator import Evaluator
from policy_gate.policy.resolver import PolicyResolver
from policy_gate.policy.source import build_policy_pack, compute_checksum, validate_policy_source
from policy_gate.policy.store import InMemoryPolicyStore
from policy_gate.review import build_services

console = Console()

LOCAL_ORG = "local"

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "dim",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _load_json(path: str) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error reading {path}:[/red] {e}")
        sys.exit(1)


def _findings_table(title: str, findings: tuple[Finding, ...] | list[Finding]) -> Table:
    table = Table(title=title)
    table.add_column("Severity")
    table.add_column("Rule")
    table.add_column("Location")
    table.add_column("Message")

    for finding in findings:
        style = SEVERITY_STYLES[finding.severity.value]
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            finding.rule_id,
            finding.location,
            finding.message,
        )
    return table


def _print_evaluation(result: EvaluationResult) -> None:
    if result.non_waived_findings:
        console.print(_findings_table("Findings", result.non_waived_findings))
    if result.waived_findings:
        console.print(_findings_table("Waived", result.waived_findings))

    if result.blocked:
        console.print(f"[red]✗ Blocked:[/red] {result.blocking_reason}")
    else:
        console.print("[green]✓ Passed[/green]")
    console.print(f"   Score: {result.score} | Rules fired: {', '.join(result.rules_fired) or 'none'}")


def _print_review(result: ReviewResult) -> None:
    if result.findings:
        console.print(_findings_table("Findings", result.findings))
    if result.waived_findings:
        console.print(_findings_table("Waived", result.waived_findings))

    if result.failed:
        console.print(f"[red]✗ Review failed:[/red] {result.blocked_reason}")
        console.print(f"   {result.remediation}")
        return
    if result.is_blocked:
        console.print(f"[red]✗ Blocked:[/red] {result.blocked_reason}")
        if result.remediation:
            console.print(f"   Fix: {result.remediation}")
    else:
        console.print("[green]✓ Passed[/green]")
    console.print(
        f"   Score: {result.score} | Policy: v{result.policy_version} "
        f"({(result.policy_checksum or '')[:12]}) | Evidence: {result.evidence_bundle_id}"
    )


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """Policy Gate - policy-driven change evaluation."""
    setup_logging(verbose)


@cli.command("evaluate")
@click.argument("findings_file", type=click.Path(exists=True))
@click.option("--policy", "policy_path", type=click.Path(exists=True), help="Policy source file")
@click.option("--store", "store_path", type=click.Path(exists=True), help="Policy store file")
@click.option("--org", "organization_id", default=LOCAL_ORG, help="Organization id")
@click.option("--repo", "repository_id", default=None, help="Repository id")
@click.option(
    "--tier",
    type=click.Choice([t.value for t in EnforcementTier]),
    default=EnforcementTier.BASIC.value,
    help="Enforcement tier used when no policy pack applies",
)
@click.option("--branch", default=None, help="Branch under evaluation (for branch waivers)")
@click.option("--output", type=click.Choice(["table", "json"]), default="table")
def evaluate(
    findings_file: str,
    policy_path: str | None,
    store_path: str | None,
    organization_id: str,
    repository_id: str | None,
    tier: str,
    branch: str | None,
    output: str,
) -> None:
    """Evaluate a findings JSON file against a policy.

    Exits with status 1 when the findings are blocked.
    """
    raw = _load_json(findings_file)
    if isinstance(raw, dict):
        raw = raw.get("findings", [])

    try:
        findings = parse_findings(raw, analyzer=Path(findings_file).name)
        result = asyncio.run(
            _evaluate_async(
                findings,
                policy_path=policy_path,
                store_path=store_path,
                organization_id=organization_id,
                repository_id=repository_id,
                tier=EnforcementTier(tier),
                branch=branch,
            )
        )
    except PolicyGateError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if output == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_evaluation(result)

    if result.blocked:
        sys.exit(1)


async def _evaluate_async(
    findings: list[Finding],
    policy_path: str | None,
    store_path: str | None,
    organization_id: str,
    repository_id: str | None,
    tier: EnforcementTier,
    branch: str | None,
) -> EvaluationResult:
    if store_path:
        store = InMemoryPolicyStore.from_file(Path(store_path), default_tier=tier)
    else:
        store = InMemoryPolicyStore(default_tier=tier)

    if policy_path:
        store.add_pack(
            build_policy_pack(
                organization_id=organization_id,
                repository_id=repository_id,
                source_text=Path(policy_path).read_text(),
            )
        )

    policy = await PolicyResolver(store).resolve(organization_id, repository_id, branch=branch)
    return Evaluator().evaluate(findings, policy)


@cli.command("review")
@click.argument("request_file", type=click.Path(exists=True))
@click.option("--output", type=click.Choice(["table", "json"]), default="table")
@click.option(
    "--evidence-out",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the evidence export for this review to a file",
)
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def review(
    request_file: str,
    output: str,
    evidence_out: str | None,
    config_path: str | None,
) -> None:
    """Run a change (ReviewRequest JSON) through the full review pipeline.

    Exits with status 1 when the change is blocked or the review failed,
    and 2 when a usage limit stopped it.
    """
    raw = _load_json(request_file)
    try:
        request = ReviewRequest.from_dict(raw)
    except (KeyError, TypeError, ValueError) as e:
        console.print(f"[red]Invalid review request:[/red] {e}")
        sys.exit(1)

    config = load_config(Path(config_path) if config_path else None)
    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/red] {error}")
        sys.exit(1)

    try:
        result, export = asyncio.run(_review_async(config, request, evidence_out is not None))
    except UsageLimitExceededError as e:
        console.print(f"[red]Usage limit ({e.status.value}):[/red] {e}")
        console.print(f"   {e.remediation}")
        sys.exit(2)
    except PolicyGateError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if evidence_out and export is not None:
        Path(evidence_out).write_text(json.dumps(export, indent=2))
        console.print(f"📝 Wrote evidence export to {evidence_out}")

    if output == "json":
        print(json.dumps(result.to_dict(), indent=2))
    else:
        _print_review(result)

    if result.is_blocked:
        sys.exit(1)


async def _review_async(
    config, request: ReviewRequest, want_export: bool
) -> tuple[ReviewResult, dict[str, Any] | None]:
    services = build_services(config)
    await services.start()
    try:
        result = await services.pipeline.review_change(request)
        export = None
        if want_export and result.evidence_bundle_id:
            export = (await services.evidence_producer.export_evidence(result.evidence_bundle_id)).to_dict()
        return result, export
    finally:
        await services.close()


@cli.group("policy")
def policy_group() -> None:
    """Policy source commands."""
    pass


@policy_group.command("validate")
@click.argument("policy_file", type=click.Path(exists=True))
def policy_validate(policy_file: str) -> None:
    """Validate a policy source file."""
    result = validate_policy_source(Path(policy_file).read_text())

    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if not result.valid:
        console.print(f"[red]{result.message}[/red]")
        for rule_id, error in result.errors:
            console.print(f"  • {rule_id}: {error}")
        sys.exit(1)

    console.print(f"[green]✓ {result.message}[/green]")


@policy_group.command("checksum")
@click.argument("policy_file", type=click.Path(exists=True))
def policy_checksum(policy_file: str) -> None:
    """Print the checksum that pins this policy version in evidence."""
    print(compute_checksum(Path(policy_file).read_text()))


@cli.group("evidence")
def evidence_group() -> None:
    """Evidence commands."""
    pass


@evidence_group.command("show")
@click.argument("export_file", type=click.Path(exists=True))
def evidence_show(export_file: str) -> None:
    """Summarize an evidence export written by `review --evidence-out`."""
    export = _load_json(export_file)
    try:
        bundle = export["evidenceBundle"]
        policy = export["policy"]
        evaluation = export["outputs"]["evaluationResult"]
    except (KeyError, TypeError) as e:
        console.print(f"[red]Not an evidence export:[/red] missing {e}")
        sys.exit(1)

    table = Table(title=f"Evidence {bundle.get('id')}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Schema version", str(export.get("schemaVersion")))
    linked = bundle.get("linkedResource") or {}
    table.add_row("Linked to", f"{linked.get('kind')} {linked.get('id')}")
    table.add_row("Policy", f"{policy.get('packId')} v{policy.get('version')}")
    table.add_row("Policy checksum", str(bundle.get("policyChecksum")))
    table.add_row("Score", str(bundle.get("deterministicScore")))
    table.add_row("Blocked", str(evaluation.get("blocked")))
    table.add_row("Rules fired", ", ".join(bundle.get("rulesFired") or []) or "none")
    table.add_row("Evaluated at", str((export.get("timestamps") or {}).get("evaluatedAt")))
    console.print(table)


@cli.group("config")
def config_group() -> None:
    """Configuration commands."""
    pass


@config_group.command("validate")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_validate(config_path: str | None) -> None:
    """Validate configuration file."""
    try:
        config = load_config(Path(config_path) if config_path else None)
        errors = validate_config(config)

        if errors:
            console.print("[red]Configuration is invalid:[/red]")
            for error in errors:
                console.print(f"  • {error}")
            sys.exit(1)
        else:
            console.print("[green]✓ Configuration is valid[/green]")
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        sys.exit(1)


@config_group.command("show")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_show(config_path: str | None) -> None:
    """Show current configuration."""
    config = load_config(Path(config_path) if config_path else None)

    console.print("\n[bold]Current Configuration[/bold]\n")

    table = Table(title="Policy")
    table.add_column("Setting")
    table.add_column("Value")
    tier = config.policy.default_tier
    table.add_row("Default tier", tier.value if isinstance(tier, EnforcementTier) else str(tier))
    table.add_row("Store", config.policy.store_path or "(none, tier defaults)")
    table.add_row("Cache TTL", f"{config.policy.cache_ttl_seconds}s")
    table.add_row("Excluded paths", ", ".join(config.orchestrator.excluded_paths) or "none")
    console.print(table)

    console.print(f"\n[bold]Analyzer:[/bold] {config.analyzer.base_url or 'disabled'}")
    console.print(f"[bold]Timeout:[/bold] {config.orchestrator.timeout_seconds}s")
    console.print(f"[bold]Parallel analyzers:[/bold] {config.orchestrator.max_parallel_analyzers}")


@cli.command("serve")
@click.option("--port", default=None, type=int, help="Port to listen on")
@click.option("--host", default=None, help="Host to bind to")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def serve(port: int | None, host: str | None, config_path: str | None) -> None:
    """Start the HTTP server."""
    from policy_gate.api import create_app

    config = load_config(Path(config_path) if config_path else None)
    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/red] {error}")
        sys.exit(1)

    app = create_app(build_services(config))

    host = host or config.server.host
    port = port or config.server.port
    console.print(f"🚀 Starting Policy Gate on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    cli()
