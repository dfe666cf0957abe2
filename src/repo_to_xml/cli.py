"""
CLI entry point for repo-to-xml.

Provides a command-line interface (and an interactive prompt session) for
flattening repositories into a single XML or plain-text document.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, Prompt

from . import __version__
from .config import (
    DEFAULT_EXCLUDES,
    DEFAULT_FILE_SIZE_LIMIT,
    ConfigError,
    ExportConfig,
    OutputFormat,
    RepoToXmlError,
    WalkStats,
    normalize_excludes,
    parse_size_limit,
)
from .config_loader import load_config, merge_cli_with_config
from .fetcher import FetchError, RepoContext, validate_local_path
from .log import console, setup_logging
from .pipeline import default_output_dir, run_export, write_output
from .utils import format_bytes

# Initialize CLI app
app = typer.Typer(
    name="repo-to-xml",
    help="Flatten a git repository or local directory into one XML or text document for LLMs.",
    add_completion=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"repo-to-xml version {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Flatten a repository into a single XML or plain-text document."""


def print_summary(stats: WalkStats, output_path: Path, elapsed: float) -> None:
    """Print the end-of-run statistics."""
    console.print()
    console.print("[bold green]✓ Export complete![/bold green]")
    console.print()
    console.print("[cyan]Statistics:[/cyan]")
    console.print(f"  Files included: {stats.files_included}")
    console.print(f"  Directories included: {stats.directories_included}")
    console.print(f"  Excluded: {stats.skipped_excluded}")
    if stats.skipped_gitignore:
        console.print(f"  Ignored by .gitignore: {stats.skipped_gitignore}")
    console.print(f"  Skipped (too large): {stats.skipped_size}")
    console.print(f"  Skipped (binary): {stats.skipped_binary}")
    if stats.errors:
        console.print(f"  [yellow]Errors: {stats.errors}[/yellow]")
    console.print(f"  Total bytes: {stats.total_bytes_included:,} ({format_bytes(stats.total_bytes_included)})")
    console.print(f"  Processing time: {elapsed:.2f}s")
    console.print()
    console.print(f"[cyan]Output file:[/cyan] {output_path}")


@app.command()
def export(
    # Input options
    path: Optional[Path] = typer.Option(
        None,
        "--path", "-p",
        help="Local path to the repository.",
    ),
    repo: Optional[str] = typer.Option(
        None,
        "--repo", "-r",
        help="Git repository URL to clone (e.g., https://github.com/owner/name).",
    ),
    ref: Optional[str] = typer.Option(
        None,
        "--ref",
        help="Git ref (branch, tag, or commit SHA) to check out when cloning.",
    ),
    username: Optional[str] = typer.Option(
        None,
        "--username",
        help="Username for a private repository.",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        envvar="REPO_TO_XML_TOKEN",
        help="Personal access token for a private repository.",
    ),

    # Filter options
    exclude: Optional[List[str]] = typer.Option(
        None,
        "--exclude", "-e",
        help="Exclusion token; any path containing it is skipped. Repeatable, comma lists allowed.",
    ),
    no_default_excludes: bool = typer.Option(
        False,
        "--no-default-excludes",
        help=f"Do not start from the default exclusions ({', '.join(DEFAULT_EXCLUDES)}).",
    ),
    max_file_bytes: Optional[int] = typer.Option(
        None,
        "--max-file-bytes",
        help=f"Maximum size in bytes for individual files (default: {DEFAULT_FILE_SIZE_LIMIT}).",
    ),
    gitignore: Optional[bool] = typer.Option(
        None,
        "--gitignore/--no-gitignore",
        help="Also skip paths matched by .gitignore files.",
        show_default=False,
    ),

    # Output options
    output_format: Optional[OutputFormat] = typer.Option(
        None,
        "--format", "-f",
        case_sensitive=False,
        help="Output format: 'xml' (default) or 'txt'.",
    ),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output-dir", "-o",
        help="Directory for the generated file (default: current directory).",
    ),
    output_file: Optional[str] = typer.Option(
        None,
        "--output-file",
        help="Output file name (default: repo.xml / repo.txt).",
    ),
    root_cwd: bool = typer.Option(
        False,
        "--root-cwd",
        help="Compute paths relative to the working directory instead of the repository.",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        help="Config file (default: repo-to-xml.toml / r2x.yml in the repository).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-V",
        help="Log every excluded or skipped entry.",
    ),
) -> None:
    """
    Export a repository as a single XML or text document.

    Examples:

        # Export a local repository as XML
        repo-to-xml export --path /path/to/repo

        # Clone and export as plain text
        repo-to-xml export --repo https://github.com/owner/repo --format txt

        # Private repository, extra exclusions
        repo-to-xml export -r https://github.com/owner/private --username me -e dist,build
    """
    setup_logging(verbose)

    # Validate input
    if path is None and repo is None:
        console.print("[red]Error: Either --path or --repo must be specified.[/red]")
        raise typer.Exit(1)

    if path is not None and repo is not None:
        console.print("[red]Error: Cannot specify both --path and --repo.[/red]")
        raise typer.Exit(1)

    start_time = time.time()

    try:
        # Fail on a bad size limit before cloning anything
        if max_file_bytes is not None:
            max_file_bytes = parse_size_limit(max_file_bytes)
        if path is not None:
            path = validate_local_path(path)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            if repo:
                task = progress.add_task("Cloning repository...", total=None)

            with RepoContext(
                path=path, repo_url=repo, ref=ref, username=username, token=token
            ) as repo_path:
                if repo:
                    progress.update(task, description="Repository cloned ✓")

                project_config = load_config(repo_path, config_file)
                merged = merge_cli_with_config(
                    project_config,
                    excludes=exclude,
                    no_default_excludes=no_default_excludes,
                    file_size_limit=max_file_bytes,
                    output_format=output_format,
                    output_dir=output_dir,
                    gitignore=gitignore,
                )
                export_config = ExportConfig(
                    source_dir=repo_path,
                    excludes=merged["excludes"],
                    file_size_limit=merged["file_size_limit"],
                    output_format=merged["output_format"],
                    root=Path.cwd() if root_cwd else None,
                    respect_gitignore=merged["respect_gitignore"],
                )

                progress.add_task("Walking files...", total=None)
                result = run_export(export_config)

                filename = output_file or export_config.output_format.default_filename
                output_path = write_output(Path(merged["output_dir"]) / filename, result.output)

        print_summary(result.stats, output_path, time.time() - start_time)

    except FetchError as e:
        console.print(f"[red]Error fetching repository: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except RepoToXmlError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def formats() -> None:
    """List the available output formats."""
    for fmt in OutputFormat:
        console.print(f"  {fmt.value}  (default file: {fmt.default_filename})")


def prompt_local_path() -> Path:
    """Ask for a local directory until an existing one is given."""
    while True:
        value = Prompt.ask("Enter the local path to the repository", console=console)
        try:
            return validate_local_path(Path(value.strip()))
        except ConfigError as e:
            console.print(f"[red]{escape(str(e))}[/red]")


def prompt_auth() -> tuple[Optional[str], Optional[str]]:
    """Ask whether the repository is private and, if so, for credentials."""
    needs_auth = Confirm.ask(
        "Is this a private repository (requires authentication)?",
        default=False,
        console=console,
    )
    if not needs_auth:
        return None, None
    username = Prompt.ask("Git username", console=console)
    token = Prompt.ask("Personal access token", password=True, console=console)
    return username, token


def prompt_excludes(defaults: tuple[str, ...] = DEFAULT_EXCLUDES) -> tuple[str, ...]:
    """Ask for exclusion tokens, pre-filled with the defaults."""
    value = Prompt.ask(
        "Folders/files to exclude (comma-separated, '-' for none)",
        default=",".join(defaults),
        console=console,
    )
    if value.strip() == "-":
        return ()
    return normalize_excludes(value)


def prompt_file_size_limit() -> int:
    """Ask for the file size limit until a positive number is given."""
    while True:
        value = Prompt.ask(
            "Max file size to include in bytes (1048576 = 1MB)",
            default=str(DEFAULT_FILE_SIZE_LIMIT),
            console=console,
        )
        try:
            return parse_size_limit(value)
        except ConfigError:
            console.print("[red]Enter a positive number.[/red]")


def prompt_output_format() -> OutputFormat:
    """Ask for the output format."""
    value = Prompt.ask(
        "Select output format",
        choices=[fmt.value for fmt in OutputFormat],
        default=OutputFormat.XML.value,
        console=console,
    )
    return OutputFormat(value)


def prompt_output_path(output_format: OutputFormat) -> Path:
    """Ask where to save the document: Desktop or a custom directory, then a file name."""
    choice = Prompt.ask(
        "Where do you want to save the output file?",
        choices=["desktop", "custom"],
        default="desktop",
        console=console,
    )
    if choice == "desktop":
        out_dir = default_output_dir()
    else:
        out_dir = Path(
            Prompt.ask(
                "Enter the output directory for the output file",
                default=str(Path.cwd()),
                console=console,
            )
        )
    filename = Prompt.ask(
        f"Enter output {output_format.value.upper()} filename",
        default=output_format.default_filename,
        console=console,
    )
    return out_dir.expanduser() / filename


def run_session() -> bool:
    """Run one interactive export. Errors are reported, never raised.

    Returns:
        True if a document was written.
    """
    try:
        source = Prompt.ask(
            "Would you like to clone a git repo or use a local path?",
            choices=["clone", "local"],
            default="clone",
            console=console,
        )
        path: Optional[Path] = None
        repo_url: Optional[str] = None
        username = token = None
        if source == "clone":
            repo_url = Prompt.ask("Enter the repository URL", console=console)
            username, token = prompt_auth()
        else:
            path = prompt_local_path()

        excludes = prompt_excludes()
        file_size_limit = prompt_file_size_limit()
        output_format = prompt_output_format()

        with RepoContext(path=path, repo_url=repo_url, username=username, token=token) as repo_path:
            config = ExportConfig(
                source_dir=repo_path,
                excludes=excludes,
                file_size_limit=file_size_limit,
                output_format=output_format,
            )
            console.print("[cyan]Walking directory and building file list...[/cyan]")
            result = run_export(config)
            output_path = write_output(prompt_output_path(output_format), result.output)

        console.print(f"[cyan]{output_format.value.upper()} file written to {output_path}[/cyan]")
        console.print("[green]Success![/green] Your file has been generated.")
        return True

    except FetchError as e:
        console.print(f"[red]Error fetching repository: {escape(str(e))}[/red]")
    except RepoToXmlError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
    except Exception as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
    return False


@app.command()
def interactive(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-V",
        help="Log every excluded or skipped entry.",
    ),
) -> None:
    """
    Answer a few prompts and export a repository, as many times as you like.
    """
    setup_logging(verbose)

    while True:
        run_session()
        next_action = Prompt.ask(
            "What would you like to do next?",
            choices=["again", "exit"],
            default="exit",
            console=console,
        )
        if next_action != "again":
            break
    console.print("Goodbye!")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
