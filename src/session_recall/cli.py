"""Command line interface for session-recall.

    session-recall sync [--no-index]
    session-recall index [cleanup|verify|repair]
    session-recall search QUERY [QUERY ...] [--mode --limit --after --before]
    session-recall read PATH [--start-line N --end-line M]
"""

import logging
import sys
from dataclasses import asdict

import click

from session_recall.config import load_config
from session_recall.errors import SessionRecallError
from session_recall.formatting import (
    format_multi_concept_results,
    format_results,
    format_size,
    truncate_head,
)
from session_recall.logging import setup_logging
from session_recall.processor.maintainer import MAINTENANCE_MODES
from session_recall.search.filters import SEARCH_MODES
from session_recall.service import SessionRecall


def echo_truncated(text: str, hint: str) -> None:
    """Print text, cut to the default line/byte budget with a hint if needed."""
    truncation = truncate_head(text)
    click.echo(truncation.content)
    if truncation.truncated:
        click.echo(
            f"\n[Output truncated: showing {truncation.output_lines} of {truncation.total_lines} lines"
            f" ({format_size(truncation.output_bytes)} of {format_size(truncation.total_bytes)})."
            f" {hint}]"
        )


def echo_report(report: object) -> None:
    for key, value in asdict(report).items():
        if isinstance(value, list):
            click.echo(f"{key}: {len(value)}")
            for item in value:
                click.echo(f"  - {item}")
        elif isinstance(value, dict):
            click.echo(f"{key}:")
            for sub_key, sub_value in value.items():
                click.echo(f"  {sub_key}: {sub_value if not isinstance(sub_value, list) else len(sub_value)}")
        else:
            click.echo(f"{key}: {value}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Archive, index, and search past assistant conversations."""
    setup_logging("cli", level=logging.DEBUG if verbose else logging.INFO)
    ctx.obj = SessionRecall(load_config())


@cli.command()
@click.option("--no-index", is_flag=True, help="Only copy transcripts, skip indexing")
@click.pass_obj
def sync(recall: SessionRecall, no_index: bool) -> None:
    """Copy new and changed transcripts into the archive, then index them."""
    report = recall.sync()
    click.echo(f"Copied {report.files_copied} file(s), {report.files_skipped} unchanged")
    for error in report.errors:
        click.echo(f"  error: {error}", err=True)

    if not no_index:
        try:
            index_report = recall.index_maintenance("cleanup")
        except Exception as e:
            click.echo(f"Indexing skipped: {e}", err=True)
            return
        click.echo(
            f"Indexed {index_report.files_indexed} file(s), "
            f"{index_report.exchanges_indexed} exchange(s), "
            f"{index_report.files_excluded} excluded"
        )


@cli.command()
@click.argument("mode", type=click.Choice(MAINTENANCE_MODES), default="cleanup")
@click.pass_obj
def index(recall: SessionRecall, mode: str) -> None:
    """Index stale files (cleanup), check consistency (verify), or fix it (repair)."""
    try:
        report = recall.index_maintenance(mode)
    except SessionRecallError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    echo_report(report)


@cli.command()
@click.argument("query", nargs=-1, required=True)
@click.option("--mode", type=click.Choice(SEARCH_MODES), default="both", help="Search mode")
@click.option("--limit", "-n", default=10, help="Number of results (1-50)")
@click.option("--after", help="Only conversations on or after this date (YYYY-MM-DD)")
@click.option("--before", help="Only conversations before this date (YYYY-MM-DD)")
@click.pass_obj
def search(
    recall: SessionRecall,
    query: tuple[str, ...],
    mode: str,
    limit: int,
    after: str | None,
    before: str | None,
) -> None:
    """Search past conversations. Several QUERY arguments run a multi-concept AND search."""
    concepts = list(query)
    try:
        response = recall.search(
            concepts if len(concepts) > 1 else concepts[0],
            mode=mode,
            limit=limit,
            after=after,
            before=before,
        )
    except SessionRecallError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    for warning in response.warnings:
        click.echo(f"Warning: {warning}", err=True)

    if len(concepts) > 1:
        text = format_multi_concept_results(response.results, concepts)
    else:
        text = format_results(response.results)
    echo_truncated(text, "Narrow your search with more specific queries or date filters.")


@cli.command()
@click.argument("path")
@click.option("--start-line", type=int, help="First line (1-indexed, inclusive)")
@click.option("--end-line", type=int, help="Last line (1-indexed, inclusive)")
@click.pass_obj
def read(recall: SessionRecall, path: str, start_line: int | None, end_line: int | None) -> None:
    """Show an archived conversation as markdown."""
    try:
        markdown = recall.read_conversation(path, start_line, end_line)
    except SessionRecallError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    echo_truncated(markdown, "Use --start-line/--end-line to page through the conversation.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
