"""
Knowledge base CLI commands.

Usage:
    ./lestrade.py kb query <text> [--collection]   # Search the vector collections
    ./lestrade.py kb similar <file|text>           # Find similar historical exploits
    ./lestrade.py kb stats                         # Collection sizes and tool-run history
    ./lestrade.py kb ingest-swc [--fetch-latest]   # Load the SWC registry
    ./lestrade.py kb ingest <file> --collection    # Load exploits or audit findings
    ./lestrade.py kb record <title> --type --severity # Record a finding
    ./lestrade.py kb validate <id> --valid/--false-positive
    ./lestrade.py kb findings                      # List recorded findings
"""

import asyncio
import os
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from analysis.config import AnalysisConfig
from analysis.errors import KnowledgeUnavailable
from commands.analyze import build_gateway
from extensions.audit import AuditTrail
from extensions.knowledge import (
    AUDIT_FINDINGS,
    COLLECTIONS,
    EXPLOITS,
    SWC,
    FindingInput,
    FindingRecorder,
    KnowledgeGateway,
    KnowledgeIngestor,
    KnowledgeMatch,
)


console = Console()


def _gateway(config: AnalysisConfig) -> KnowledgeGateway:
    gateway = build_gateway(config)
    if gateway is None:
        console.print("[red]Vector database is disabled (ENABLE_VECTOR_DB=false)[/red]")
        raise SystemExit(1)
    return gateway


def _run(coro):
    try:
        return asyncio.run(coro)
    except KnowledgeUnavailable as e:
        console.print(f"[red]{e.message}[/red]")
        console.print("[dim]Is the Chroma server running? Check CHROMA_URL.[/dim]")
        raise SystemExit(1)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)


def _audit_trail(config: AnalysisConfig) -> AuditTrail:
    if not config.enable_audit_trail:
        console.print("[red]Audit trail is disabled (ENABLE_AUDIT_TRAIL=false)[/red]")
        raise SystemExit(1)
    return AuditTrail(config.audit_db_path)


def _match_table(title: str, matches: list[KnowledgeMatch]) -> Table:
    table = Table(show_header=True, header_style="bold", title=title)
    table.add_column("ID", width=18)
    table.add_column("Relevance", width=9)
    table.add_column("Title", width=35)
    table.add_column("Excerpt", width=50)

    for match in matches:
        meta = match.metadata.to_dict()
        label = meta.get("title") or meta.get("name") or ""
        excerpt = " ".join(match.document.split())
        table.add_row(
            match.id,
            f"{match.relevance}%",
            label[:35],
            excerpt[:50] + ("..." if len(excerpt) > 50 else ""),
        )
    return table


@click.group("kb")
def kb():
    """Vector knowledge base of weaknesses, exploits and audit findings."""
    pass


@kb.command("query")
@click.argument("text")
@click.option(
    "--collection", "-c",
    type=click.Choice(["all", *COLLECTIONS]),
    default="all",
    help="Collection to search",
)
@click.option("--limit", "-l", default=5, type=click.IntRange(min=1), help="Maximum results per collection")
def query(text: str, collection: str, limit: int):
    """Search the knowledge base."""
    gateway = _gateway(AnalysisConfig.from_env())
    console.print(f"\n[bold]Searching knowledge base for: {text}[/bold]\n")

    if collection == "all":
        result = _run(gateway.search_all(text, limit))
        sections = [("SWC Registry", result.swc), ("Exploits", result.exploits), ("Audit Findings", result.audit_findings)]
    else:
        sections = [(collection, _run(gateway.query(collection, text, limit)))]

    found = False
    for title, matches in sections:
        if matches:
            found = True
            console.print(_match_table(f"{title} ({len(matches)})", matches))
            console.print()

    if not found:
        console.print("[yellow]No results found.[/yellow]")


@kb.command("similar")
@click.argument("code_or_path")
@click.option("--limit", "-l", default=5, type=click.IntRange(min=1), help="Maximum results")
@click.option("--category", "-c", help="Only exploits in this category")
def similar(code_or_path: str, limit: int, category: str | None):
    """Find historical exploits similar to a contract or description."""
    if os.path.isfile(code_or_path):
        text = Path(code_or_path).read_text(encoding="utf-8", errors="replace")
    else:
        text = code_or_path

    gateway = _gateway(AnalysisConfig.from_env())
    matches = _run(gateway.find_similar_exploits(text, limit, category))
    if not matches:
        console.print("[yellow]No similar exploits found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Similarity", width=10)
    table.add_column("Name", width=30)
    table.add_column("Protocol", width=18)
    table.add_column("Category", width=18)
    table.add_column("Loss", width=12)
    table.add_column("Date", width=12)

    for match in matches:
        meta = match.metadata.to_dict()
        table.add_row(
            f"{match.relevance}%",
            meta.get("name") or match.id,
            meta.get("protocol") or "",
            meta.get("category") or "",
            meta.get("loss") or "",
            meta.get("date") or "",
        )
    console.print(table)


@kb.command("stats")
def stats():
    """Show knowledge base and tool-run statistics."""
    config = AnalysisConfig.from_env()
    console.print("\n[bold]Knowledge Base Statistics[/bold]\n")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Collection", width=20)
    table.add_column("Documents", width=12, justify="right")

    counts = _run(_gateway(config).stats())
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)

    if not config.enable_audit_trail:
        return

    trail = AuditTrail(config.audit_db_path)
    findings = trail.finding_stats()
    if findings["total"]:
        console.print(
            f"\n[bold]Findings[/bold] [dim]({findings['total']} total, {findings['validated']} confirmed, "
            f"{findings['falsePositives']} false positives, {findings['pending']} pending)[/dim]"
        )

    runs = trail.tool_run_stats()
    if not runs["totalRuns"]:
        console.print("\n[dim]No tool runs recorded[/dim]")
        return

    console.print(f"\n[bold]Tool Runs[/bold] [dim]({runs['totalRuns']} total, {runs['last24Hours']} in last 24h)[/dim]\n")
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", width=12)
    table.add_column("Runs", justify="right")
    table.add_column("Avg ms", justify="right")
    table.add_column("Success", justify="right")
    for tool, entry in runs["byTool"].items():
        table.add_row(tool, str(entry["runs"]), str(entry["avgDuration"]), f"{entry['successRate']}%")
    console.print(table)


@kb.command("ingest-swc")
@click.option("--fetch-latest", is_flag=True, help="Refresh entries from the upstream SWC registry")
def ingest_swc(fetch_latest: bool):
    """Load the SWC registry into the knowledge base."""
    ingestor = KnowledgeIngestor(_gateway(AnalysisConfig.from_env()))
    entries = _run(ingestor.ingest_swc(fetch_latest=fetch_latest))
    console.print(f"[green]Ingested {len(entries)} SWC entries into {SWC}[/green]")


@kb.command("ingest")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--collection", "-c",
    type=click.Choice([EXPLOITS, AUDIT_FINDINGS]),
    required=True,
    help="Target collection",
)
def ingest(file: str, collection: str):
    """Load exploits or audit findings from a JSON/YAML file."""
    ingestor = KnowledgeIngestor(_gateway(AnalysisConfig.from_env()))
    added, errors = _run(ingestor.ingest_file(Path(file), collection))

    for error in errors:
        console.print(f"[yellow]Skipped {error}[/yellow]")
    console.print(f"[green]Ingested {added} records into {collection}[/green]")


@kb.command("record")
@click.argument("title")
@click.option("--type", "-t", "vulnerability_type", required=True, help="Vulnerability type (reentrancy, access-control, ...)")
@click.option(
    "--severity", "-s",
    type=click.Choice(["critical", "high", "medium", "low", "info"]),
    required=True,
)
@click.option("--description", "-d", help="Detailed description")
@click.option("--contract", help="Affected contract name or path")
@click.option("--function", "function", help="Affected function")
@click.option("--line", "line_number", type=int, help="Line number in the contract")
@click.option("--snippet", "code_snippet", help="Relevant code")
@click.option("--tool", help="Tool that found it (slither, mythril, manual)")
@click.option("--confidence", type=click.FloatRange(0, 1), help="Confidence between 0 and 1")
def record(title: str, **fields):
    """Record a security finding for later review."""
    config = AnalysisConfig.from_env()
    recorder = FindingRecorder(_audit_trail(config), build_gateway(config))
    try:
        finding = FindingInput(title=title, **fields)
    except ValidationError as e:
        console.print(f"[red]Invalid finding: {e.errors()[0]['msg']}[/red]")
        raise SystemExit(1)

    finding_id = _run(recorder.record(finding))
    console.print(f"[green]Finding recorded with ID: {finding_id}[/green]")


@kb.command("validate")
@click.argument("finding_id")
@click.option("--valid/--false-positive", "was_valid", required=True, help="Reviewer verdict")
@click.option("--notes", "-n", help="Reviewer notes")
def validate(finding_id: str, was_valid: bool, notes: str | None):
    """Confirm a recorded finding or mark it as a false positive."""
    config = AnalysisConfig.from_env()
    recorder = FindingRecorder(_audit_trail(config), build_gateway(config))

    result = _run(recorder.validate(finding_id, was_valid, notes))
    if was_valid:
        console.print(f"[green]Finding {finding_id} confirmed[/green]")
    else:
        stored = " and stored as a false positive" if result["falsePositiveStored"] else ""
        console.print(f"[yellow]Finding {finding_id} marked invalid{stored}[/yellow]")


@kb.command("findings")
@click.option("--severity", "-s", type=click.Choice(["critical", "high", "medium", "low", "info"]))
@click.option("--pending", is_flag=True, help="Only findings without a verdict")
@click.option("--limit", "-l", default=20, type=click.IntRange(min=1))
def findings(severity: str | None, pending: bool, limit: int):
    """List recorded findings, newest first."""
    trail = _audit_trail(AnalysisConfig.from_env())
    rows = trail.list_findings(severity=severity, pending=pending, limit=limit)

    if not rows:
        console.print("[yellow]No findings recorded.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", width=32)
    table.add_column("Severity", width=9)
    table.add_column("Type", width=18)
    table.add_column("Title", width=40)
    table.add_column("Verdict", width=14)
    verdicts = {True: "[green]valid[/green]", False: "[yellow]false positive[/yellow]", None: "[dim]pending[/dim]"}
    for row in rows:
        table.add_row(row["id"], row["severity"], row["vulnerability_type"], row["title"], verdicts[row["was_valid"]])
    console.print(table)
