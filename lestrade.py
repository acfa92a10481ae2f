#!/usr/bin/env python3
"""Lestrade - Solidity security analysis.

Combines:
- Heuristic vulnerability indicators
- External tools (Slither, Solhint, Mythril)
- Vector knowledge base of SWC entries, exploits and audit findings
- Risk scoring and recommendations
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import click
import typer
from rich.console import Console

console = Console()

app = typer.Typer(
    name="lestrade",
    help="Solidity security analysis with a vulnerability knowledge base",
    add_completion=False,
)

kb_app = typer.Typer(help="Vector knowledge base (SWC registry, exploits, audit findings)")
app.add_typer(kb_app, name="kb")


def _invoke_click(cmd: click.Command, params: dict):
    """Run a click command with already-parsed parameters."""
    ctx = click.Context(cmd)
    return ctx.invoke(cmd, **params)


# ─────────────────────────────────────────────────────────────────────────────
# Analysis Commands
# ─────────────────────────────────────────────────────────────────────────────

@app.command("analyze")
def analyze(
    path: str = typer.Argument(..., help="Solidity file to analyze"),
    no_kb: bool = typer.Option(False, "--no-kb", help="Skip knowledge base queries"),
    limit: int = typer.Option(10, "--limit", "-l", min=1, help="Knowledge results per collection"),
    no_similar: bool = typer.Option(False, "--no-similar", help="Skip similar exploit search"),
    no_tools: bool = typer.Option(False, "--no-tools", help="Skip external tools"),
    quick: bool = typer.Option(False, "--quick", help="Single knowledge query, no Mythril"),
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
):
    """Run a comprehensive security analysis on a Solidity file."""
    from commands.analyze import analyze as analyze_cmd
    _invoke_click(analyze_cmd, {
        'path': path,
        'no_kb': no_kb,
        'limit': limit,
        'no_similar': no_similar,
        'no_tools': no_tools,
        'quick': quick,
        'as_json': as_json,
    })


@app.command("contracts")
def contracts(
    directory: str = typer.Argument(..., help="Directory to scan"),
    no_recursive: bool = typer.Option(False, "--no-recursive", help="Only list the top-level directory"),
):
    """List Solidity files with a quick indicator count."""
    from commands.analyze import contracts as contracts_cmd
    _invoke_click(contracts_cmd, {'directory': directory, 'no_recursive': no_recursive})


@app.command("tools")
def tools():
    """Check which external security tools are installed."""
    from commands.analyze import tools as tools_cmd
    _invoke_click(tools_cmd, {})


# ─────────────────────────────────────────────────────────────────────────────
# Knowledge Base Commands
# ─────────────────────────────────────────────────────────────────────────────

@kb_app.command("query")
def kb_query(
    text: str = typer.Argument(..., help="Search text"),
    collection: str = typer.Option("all", "--collection", "-c", help="all, swc_registry, exploits, audit_findings, patterns, false_positives"),
    limit: int = typer.Option(5, "--limit", "-l", min=1, help="Maximum results per collection"),
):
    """Search the knowledge base."""
    from commands.knowledge import query
    _invoke_click(query, {'text': text, 'collection': collection, 'limit': limit})


@kb_app.command("similar")
def kb_similar(
    code_or_path: str = typer.Argument(..., help="Solidity file or a description of the code"),
    limit: int = typer.Option(5, "--limit", "-l", min=1, help="Maximum results"),
    category: str = typer.Option(None, "--category", "-c", help="Only exploits in this category"),
):
    """Find historical exploits similar to a contract or description."""
    from commands.knowledge import similar
    _invoke_click(similar, {'code_or_path': code_or_path, 'limit': limit, 'category': category})


@kb_app.command("stats")
def kb_stats():
    """Show knowledge base and tool-run statistics."""
    from commands.knowledge import stats
    _invoke_click(stats, {})


@kb_app.command("ingest-swc")
def kb_ingest_swc(
    fetch_latest: bool = typer.Option(False, "--fetch-latest", help="Refresh entries from the upstream SWC registry"),
):
    """Load the SWC registry into the knowledge base."""
    from commands.knowledge import ingest_swc
    _invoke_click(ingest_swc, {'fetch_latest': fetch_latest})


@kb_app.command("ingest")
def kb_ingest(
    file: str = typer.Argument(..., help="JSON or YAML records file"),
    collection: str = typer.Option(..., "--collection", "-c", help="exploits or audit_findings"),
):
    """Load exploits or audit findings from a file."""
    from commands.knowledge import ingest
    _invoke_click(ingest, {'file': file, 'collection': collection})


@kb_app.command("record")
def kb_record(
    title: str = typer.Argument(..., help="Title of the finding"),
    vulnerability_type: str = typer.Option(..., "--type", "-t", help="Vulnerability type (reentrancy, access-control, ...)"),
    severity: str = typer.Option(..., "--severity", "-s", help="critical, high, medium, low or info"),
    description: str = typer.Option(None, "--description", "-d", help="Detailed description"),
    contract: str = typer.Option(None, "--contract", help="Affected contract name or path"),
    function: str = typer.Option(None, "--function", help="Affected function"),
    line_number: int = typer.Option(None, "--line", help="Line number in the contract"),
    code_snippet: str = typer.Option(None, "--snippet", help="Relevant code"),
    tool: str = typer.Option(None, "--tool", help="Tool that found it (slither, mythril, manual)"),
    confidence: float = typer.Option(None, "--confidence", min=0, max=1, help="Confidence between 0 and 1"),
):
    """Record a security finding for later review."""
    from commands.knowledge import record
    _invoke_click(record, {
        'title': title, 'vulnerability_type': vulnerability_type, 'severity': severity,
        'description': description, 'contract': contract, 'function': function,
        'line_number': line_number, 'code_snippet': code_snippet, 'tool': tool, 'confidence': confidence,
    })


@kb_app.command("validate")
def kb_validate(
    finding_id: str = typer.Argument(..., help="ID printed by kb record"),
    was_valid: bool = typer.Option(..., "--valid/--false-positive", help="Reviewer verdict"),
    notes: str = typer.Option(None, "--notes", "-n", help="Reviewer notes"),
):
    """Confirm a recorded finding or mark it as a false positive."""
    from commands.knowledge import validate
    _invoke_click(validate, {'finding_id': finding_id, 'was_valid': was_valid, 'notes': notes})


@kb_app.command("findings")
def kb_findings(
    severity: str = typer.Option(None, "--severity", "-s", help="Only this severity"),
    pending: bool = typer.Option(False, "--pending", help="Only findings without a verdict"),
    limit: int = typer.Option(20, "--limit", "-l", min=1, help="Maximum rows"),
):
    """List recorded findings, newest first."""
    from commands.knowledge import findings
    _invoke_click(findings, {'severity': severity, 'pending': pending, 'limit': limit})


@app.command()
def version():
    """Show Lestrade version."""
    console.print("[bold]Lestrade[/bold] v1.0.0")
    console.print("Solidity security analysis platform")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
