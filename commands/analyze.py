"""
Contract analysis commands.

Usage:
    ./lestrade.py analyze <file.sol> [--no-kb] [--no-tools] [--quick] [--json]
    ./lestrade.py contracts <dir>
    ./lestrade.py tools
"""

from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from analysis.comprehensive import AnalysisOptions, ComprehensiveAnalyzer, is_error
from analysis.config import AnalysisConfig
from analysis.contract import analyze_source
from analysis.errors import AnalysisError
from analysis.source import file_info, find_solidity_files, read_source
from extensions.audit import AuditTrail
from extensions.knowledge import KnowledgeGateway
from extensions.static import ExternalToolPipeline, ToolRunner


console = Console()

LEVEL_COLORS = {
    "CRITICAL": "bold red",
    "HIGH": "red",
    "MEDIUM": "yellow",
    "LOW": "blue",
    "INFO": "green",
}


def build_gateway(config: AnalysisConfig) -> KnowledgeGateway | None:
    """Knowledge gateway for the configured Chroma server, or None if disabled."""
    if not config.enable_vector_db:
        return None
    from extensions.knowledge.chroma import ChromaProvider

    return KnowledgeGateway(ChromaProvider(config.chroma_url), verbose=config.verbose)


def build_analyzer(
    config: AnalysisConfig,
    use_knowledge_base: bool = True,
    use_tools: bool = True,
) -> ComprehensiveAnalyzer:
    audit_trail = AuditTrail(config.audit_db_path) if config.enable_audit_trail else None
    tools = None
    if use_tools:
        runner = ToolRunner(default_timeout=config.default_timeout, verbose=config.verbose)
        tools = ExternalToolPipeline(runner, audit_trail, config.analysis_timeout, config.verbose)
    gateway = build_gateway(config) if use_knowledge_base else None
    return ComprehensiveAnalyzer(gateway=gateway, tools=tools, audit_trail=audit_trail, config=config)


@click.command("analyze")
@click.argument("path", type=click.Path())
@click.option("--no-kb", is_flag=True, help="Skip knowledge base queries")
@click.option("--limit", "-l", default=10, type=click.IntRange(min=1), help="Knowledge results per collection")
@click.option("--no-similar", is_flag=True, help="Skip similar exploit search")
@click.option("--no-tools", is_flag=True, help="Skip external tools (slither, solhint, mythril)")
@click.option("--quick", is_flag=True, help="Single knowledge query, no Mythril")
@click.option("--json", "as_json", is_flag=True, help="Print the full report as JSON")
def analyze(path: str, no_kb: bool, limit: int, no_similar: bool, no_tools: bool, quick: bool, as_json: bool):
    """Run a comprehensive security analysis on a Solidity file."""
    config = AnalysisConfig.from_env()
    options = AnalysisOptions(
        include_knowledge_base=not no_kb,
        knowledge_limit=limit,
        include_similar_exploits=not no_similar,
        use_external_tools=not no_tools,
        comprehensive_mode=not quick,
    )

    analyzer = build_analyzer(config, use_knowledge_base=not no_kb, use_tools=not no_tools)

    if not as_json:
        console.print(f"\n[bold]Analyzing {path}[/bold]\n")
    report = analyzer.analyze_sync(path, options)

    if is_error(report):
        if as_json:
            console.print_json(data=report)
        else:
            console.print(f"[red]{report['error']}[/red] [dim]({report['code']})[/dim]")
        raise SystemExit(1)

    if as_json:
        console.print_json(data=report)
        return

    render_report(report)


def render_report(report: dict) -> None:
    """Pretty-print an analysis report."""
    contract = report["contract"]
    risk = report["riskAssessment"]
    summary = report["summary"]
    color = LEVEL_COLORS.get(risk["level"], "white")

    names = ", ".join(contract["metadata"]["contracts"]) or contract["file"]["name"]
    header = (
        f"[bold]{names}[/bold]\n"
        f"Risk: [{color}]{risk['level']}[/{color}] (score {risk['score']})\n"
        f"[dim]{contract['file']['lines']} lines, {contract['summary']['totalFunctions']} functions, "
        f"compiler {', '.join(contract['metadata']['compilerVersions']) or 'unknown'}[/dim]"
    )
    console.print(Panel(header, title="Lestrade", border_style=color))

    # Indicators
    indicators = contract["security"]["indicators"]
    if indicators:
        console.print(f"\n[bold cyan]Indicators ({len(indicators)})[/bold cyan]")
        for indicator in indicators:
            severity, _, text = indicator.partition(": ")
            sev_color = LEVEL_COLORS.get(severity, "white")
            console.print(f"  [{sev_color}][{severity}][/{sev_color}] {text}")
    else:
        console.print("\n[green]No heuristic indicators fired[/green]")

    if risk["factors"]:
        console.print("\n[bold]Risk factors:[/bold]")
        for factor in risk["factors"]:
            console.print(f"  • {factor}")

    # External tools
    tools = report["externalTools"]
    if tools:
        table = Table(show_header=True, header_style="bold", title="External Tools")
        table.add_column("Tool")
        table.add_column("Status")
        table.add_column("Details")
        for name, entry in tools.items():
            if not entry["available"]:
                table.add_row(name.title(), "[dim]Not installed[/dim]", entry.get("hint", ""))
            else:
                status = entry.get("status", "")
                style = "red" if status == "failed" else "green"
                details = entry.get("error") or (
                    f"{len(entry['findings'])} findings" if entry.get("findings") else ""
                )
                table.add_row(name.title(), f"[{style}]{status}[/{style}]", details[:80])
        console.print()
        console.print(table)

    # Knowledge base
    kb = report["knowledgeBase"]
    if kb:
        similar = kb["similarExploits"]
        if similar:
            table = Table(show_header=True, header_style="bold", title="Similar Exploits")
            table.add_column("Similarity", width=10)
            table.add_column("Name", width=30)
            table.add_column("Category", width=20)
            table.add_column("Loss", width=12)
            table.add_column("Source", width=18)
            for exploit in similar[:10]:
                table.add_row(
                    exploit["similarity"],
                    exploit.get("name") or exploit["id"],
                    exploit.get("category") or "",
                    exploit.get("loss") or "",
                    exploit.get("source") or "",
                )
            console.print()
            console.print(table)

        swc = kb["queries"]["swc"]
        if swc:
            console.print("\n[bold]Matched SWC entries:[/bold]")
            for entry in swc:
                meta = entry["metadata"]
                console.print(
                    f"  {entry['relevance']:>4}  [bold]{entry['id']}[/bold] "
                    f"{meta.get('title', '')} [dim]({meta.get('severity', 'unknown')})[/dim]"
                )

    console.print("\n[bold]Recommendations:[/bold]")
    for rec in report["recommendations"]:
        console.print(f"  • {rec}")

    console.print(
        f"\n[dim]{summary['totalFindings']} findings "
        f"({summary['criticalIssues']} critical, {summary['highIssues']} high, "
        f"{summary['mediumIssues']} medium, {summary['lowIssues']} low), "
        f"{summary['knowledgeBaseMatches']} knowledge matches, "
        f"{summary['externalToolsUsed']} tools used[/dim]"
    )


@click.command("contracts")
@click.argument("directory", type=click.Path())
@click.option("--no-recursive", is_flag=True, help="Only list the top-level directory")
def contracts(directory: str, no_recursive: bool):
    """List Solidity files with a quick indicator count."""
    config = AnalysisConfig.from_env()
    try:
        files = find_solidity_files(directory, recursive=not no_recursive)
    except AnalysisError as e:
        console.print(f"[red]{e.message}: {directory}[/red]")
        raise SystemExit(1)

    if not files:
        console.print(f"[yellow]No .sol files found in {directory}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("File", width=50)
    table.add_column("Contracts", width=30)
    table.add_column("Lines", justify="right")
    table.add_column("Indicators", justify="right")

    root = Path(directory)
    for path in files:
        try:
            src = read_source(path, config.max_file_size)
        except AnalysisError as e:
            table.add_row(str(path.relative_to(root)), f"[red]{e.message}[/red]", "", "")
            continue
        analysis = analyze_source(src, file_info(path, src))
        critical = analysis.severity_breakdown["critical"]
        count = f"{len(analysis.indicators)}" + (f" [red]({critical} critical)[/red]" if critical else "")
        table.add_row(
            str(path.relative_to(root)),
            ", ".join(analysis.contracts)[:30],
            str(analysis.file["lines"]),
            count,
        )

    console.print(table)
    console.print(f"\n[dim]{len(files)} files[/dim]")


@click.command("tools")
def tools():
    """Check which external security tools are installed."""
    config = AnalysisConfig.from_env()
    pipeline = ExternalToolPipeline(ToolRunner(default_timeout=config.default_timeout))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Version/Install")

    status = pipeline.check_tools()
    for tool_name, (available, info) in status.items():
        label = "[green]Available[/green]" if available else "[red]Not found[/red]"
        table.add_row(tool_name, label, info)

    console.print(table)
    installed = sum(1 for available, _ in status.values() if available)
    console.print(f"\n[dim]{installed}/{len(status)} tools installed[/dim]")
