#!/usr/bin/env python3
"""
KYC Graph Review

Graph-based review of uploaded KYC documents: topic assembly, risk triage,
parallel rule checks, bounded reflection and a human gate for high risk.
Rules check. Reflection replans once. Humans decide.

Usage:
    python main.py --documents docs/client_profile.txt docs/wealth_statement.txt
    python main.py --documents docs/*.txt --reflection --json
    python main.py --resume-token '{"runId":"kyc_run_...","gateId":"human_gate","createdAt":1700000000000}' \\
        --decision approve_edd --signer "J. Analyst"
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Load .env file before other imports
from config import get_config

from logger import setup_logging
from agents import set_api_key
from models import (
    Document, Features, HumanDecision, HumanDecisionValue, ReviewRequest, GraphReviewResponse,
    IssueSeverity, TraceStatus,
)
from resume_store import FileResumeStore
from pipeline import ReviewPipeline


# Use legacy_windows mode for better Windows compatibility
console = Console(force_terminal=True, legacy_windows=True)


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="kyc-graph-review",
        description="KYC Graph Review - Rules check. Reflection replans once. Humans decide.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --documents profile.txt wealth.txt             # First-pass review
    %(prog)s --documents profile.txt --reflection --json    # With reflection, raw JSON out
    %(prog)s --resume-token TOKEN --decision approve_edd --signer "J. Analyst"

The review will:
  1. Assemble document paragraphs into KYC topics
  2. Score risk and choose a route (fast, crosscheck, escalate, human_gate)
  3. Run coverage, conflict and policy checks in parallel
  4. Reflect once and optionally rerun the checks
  5. Finalize issues, or pause at the human gate and print a resume token

Paused runs are kept as JSON files under the resume store directory so a
later invocation can resume them.
        """
    )

    parser.add_argument(
        "--documents",
        nargs="+",
        metavar="FILE",
        help="Plain-text documents to review"
    )

    parser.add_argument(
        "--resume-token",
        metavar="TOKEN",
        help="Resume token printed by a run that stopped at the human gate"
    )

    parser.add_argument(
        "--decision",
        choices=[d.value for d in HumanDecisionValue],
        help="Human gate decision (required with --resume-token)"
    )

    parser.add_argument(
        "--signer",
        help="Name of the reviewer making the decision"
    )

    parser.add_argument(
        "--notes",
        help="Free-text notes recorded with the decision"
    )

    parser.add_argument(
        "--reflection",
        action="store_true",
        help="Enable the reflection / replan step"
    )

    parser.add_argument(
        "--run-id",
        help="Run id to park under if the review stops at the human gate"
    )

    parser.add_argument(
        "--store-dir",
        help="Resume store directory (default: RESUME_STORE_DIR or .local/resume-store)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the raw JSON response instead of tables"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    parser.add_argument(
        "--api-key",
        help="Anthropic API key for REFLECTION_PROVIDER=claude (can also use ANTHROPIC_API_KEY env var)"
    )

    return parser


def load_documents(paths: list[str]) -> list[Document]:
    """Read each file as one document named after the file."""
    documents = []
    for raw_path in paths:
        path = Path(raw_path)
        if not path.exists():
            raise FileNotFoundError(f"Document not found: {raw_path}")
        documents.append(Document(name=path.name, content=path.read_text(encoding="utf-8")))
    return documents


def display_summary(response: GraphReviewResponse):
    """Display a summary of the review response."""
    trace = response.graph_review_trace
    summary = trace.summary

    path_colors = {
        "fast": "green",
        "crosscheck": "yellow",
        "escalate": "red",
        "human_gate": "bold red",
    }
    path = summary.path.value
    path_color = path_colors.get(path, "white")

    info_lines = [
        f"Route: [{path_color}]{path}[/{path_color}]",
        f"Risk Score: {summary.risk_score}",
        f"Missing Topics: {summary.coverage_missing_count}",
        f"Conflicts: {summary.conflict_count}",
        f"Issues: {len(response.issues)}",
    ]
    if summary.risk_breakdown:
        rb = summary.risk_breakdown
        info_lines.append(f"Breakdown: coverage {rb.coverage_points} + keywords {rb.keyword_points}")

    console.print(Panel(
        "\n".join(info_lines),
        title="KYC Graph Review",
        border_style="red" if trace.degraded else "blue"
    ))

    if trace.degraded:
        console.print(f"[bold red]Review degraded:[/bold red] {trace.error}")

    # Issues table
    if response.issues:
        table = Table(title="Issues")
        table.add_column("Severity")
        table.add_column("Title", style="cyan")
        table.add_column("Message")
        table.add_column("Agent", style="dim")

        for issue in response.issues:
            color = "red" if issue.severity == IssueSeverity.FAIL else "yellow"
            table.add_row(f"[{color}]{issue.severity.value}[/{color}]", issue.title, issue.message, issue.agent.name)

        console.print(table)

    # Trace table
    status_colors = {
        TraceStatus.EXECUTED: "green",
        TraceStatus.SKIPPED: "dim",
        TraceStatus.WAITING: "yellow",
        TraceStatus.FAILED: "bold red",
    }
    table = Table(title="Graph Trace")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Node", style="cyan")
    table.add_column("Status")
    table.add_column("Decision")
    table.add_column("ms", justify="right")

    for i, event in enumerate(trace.events, 1):
        color = status_colors.get(event.status, "white")
        table.add_row(
            str(i),
            event.node,
            f"[{color}]{event.status.value}[/{color}]",
            event.decision or event.reason or "",
            "" if event.duration_ms is None else str(event.duration_ms),
        )

    console.print(table)

    if response.human_gate:
        gate = response.human_gate
        console.print(Panel(
            f"{gate.prompt}\n"
            f"Options: {', '.join(gate.options)}\n\n"
            f"Resume with:\n  python main.py --resume-token '{response.resume_token}' --decision <option>",
            title="[bold yellow]Human Gate[/bold yellow]",
            border_style="yellow",
        ))


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    verbose = not args.quiet and not args.json

    config = get_config()
    setup_logging(level="WARNING" if not verbose else None)

    api_key = args.api_key or config.api_key
    if api_key:
        set_api_key(api_key)

    if args.resume_token and not args.decision:
        console.print("[bold red]Error:[/bold red] --resume-token requires --decision.")
        return 1
    if not args.resume_token and not args.documents:
        console.print("[bold red]Error:[/bold red] Provide --documents or --resume-token.")
        return 1

    if verbose:
        console.print(Panel.fit(
            "[bold blue]KYC Graph Review[/bold blue]\n"
            "Rules check. Reflection replans once. Humans decide.",
            border_style="blue"
        ))

    try:
        store = FileResumeStore(args.store_dir or config.resume_store_dir)
        pipeline = ReviewPipeline(resume_store=store, config=config)

        documents = load_documents(args.documents) if args.documents else []
        human_decision = None
        if args.decision:
            human_decision = HumanDecision(
                decision=HumanDecisionValue(args.decision),
                signer=args.signer,
                notes=args.notes,
            )

        if verbose:
            if args.resume_token:
                console.print(f"\nResuming with decision: [bold]{args.decision}[/bold]\n")
            else:
                console.print(f"\nReviewing [bold]{len(documents)}[/bold] document(s)\n")

        response = await pipeline.run(
            ReviewRequest(documents=documents, human_decision=human_decision),
            run_id=args.run_id,
            resume_token=args.resume_token,
            features=Features(reflection=args.reflection),
        )

        if args.json:
            print(json.dumps(response.to_wire(), indent=2))
        else:
            display_summary(response)

        return 1 if response.graph_review_trace.degraded else 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Review cancelled by user[/yellow]")
        return 130

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            console.print_exception()
        return 1


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    return asyncio.run(main_async(args))


if __name__ == "__main__":
    sys.exit(main())
