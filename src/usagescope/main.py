"""usagescope CLI - classify how a C++ symbol is used at each occurrence."""
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape
from rich.table import Table

from usagescope.analyzer.classifier import classify
from usagescope.analyzer.clangd_ast import (
    containing_function_name,
    get_ast_path,
    is_local_variable_definition,
    load_ast,
)
from usagescope.analyzer.find_usages import (
    ClangdFindUsages,
    Usage,
    filter_usages,
    load_locations,
    summarize,
)
from usagescope.analyzer.syntax import Range
from usagescope.analyzer.tags import TagSet, usage_style
from usagescope.config import __version__, get_config
from usagescope.utils.logger import set_log_level
from usagescope.utils.safe_console import SafeConsole

app = typer.Typer(
    name="usagescope",
    help="Find Usages with read/write classification for C++ symbols",
    add_completion=False
)
console = SafeConsole()

STYLE_COLORS = {
    'declaration': 'bold cyan',
    'write': 'bold red',
    'writable-ref': 'yellow',
    'read': 'green',
    'occurrence': 'dim',
}


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(1)


def _parse_filter(only: Optional[str]) -> TagSet:
    if not only:
        return TagSet()
    try:
        return TagSet.parse(only)
    except ValueError as e:
        _fail(str(e))


def _print_usages(usages: List[Usage], title: str) -> None:
    if not usages:
        console.print("[bold yellow]No usages found.[/bold yellow]")
        return

    table = Table(title=title)
    table.add_column("Location", style="cyan", no_wrap=True)
    table.add_column("Tags")
    table.add_column("Function", style="magenta")
    table.add_column("Line")
    for usage in usages:
        style = STYLE_COLORS[usage_style(usage.tags)]
        table.add_row(
            f"{escape(usage.file_path)}:{usage.line}:{usage.column}",
            f"[{style}]{escape(str(usage.tags))}[/{style}]",
            escape(usage.containing_function or ''),
            escape(usage.line_text.strip()),
        )
    console.print(table)

    console.print("\n[bold yellow]Summary:[/bold yellow]")
    console.print(f"  Total usages: {len(usages)}")
    for name, count in summarize(usages).items():
        if count:
            console.print(f"  {name}: {count}")


def _emit_json(usages: List[Usage]) -> None:
    typer.echo(json.dumps({
        'usages': [usage.to_dict() for usage in usages],
        'summary': summarize(usages),
    }, indent=2))


@app.command("classify")
def classify_command(
    ast_file: Path = typer.Argument(..., help="clangd textDocument/ast response (JSON)"),
    symbol: str = typer.Option(..., "--symbol", "-s", help="Symbol name at the position"),
    line: int = typer.Option(..., "--line", "-l", min=1, help="1-based line of the occurrence"),
    column: int = typer.Option(..., "--column", "-c", min=1, help="1-based column of the occurrence"),
    length: Optional[int] = typer.Option(None, "--length", min=0, help="Occurrence length (default: symbol length)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Classify a single occurrence inside a clangd AST dump."""
    try:
        root = load_ast(ast_file, get_config().invokable_markers)
    except (ValueError, OSError) as e:
        _fail(str(e))

    target = Range.at(line - 1, column - 1, len(symbol) if length is None else length)
    path = get_ast_path(root, target)
    tags = classify(path, symbol)
    function_name = containing_function_name(path, target)
    local_var = is_local_variable_definition(path)

    if as_json:
        typer.echo(json.dumps({
            'symbol': symbol,
            'line': line,
            'column': column,
            'tags': tags.names(),
            'bits': tags.to_int(),
            'style': usage_style(tags),
            'containing_function': function_name,
            'local_variable_definition': local_var,
        }, indent=2))
        return

    style = usage_style(tags)
    color = STYLE_COLORS[style]
    console.print(f"[bold blue]{escape(symbol)}[/bold blue] at {line}:{column}")
    console.print(f"  Tags: [{color}]{escape(str(tags))}[/{color}] ({style})")
    console.print(f"  Path: {escape(' -> '.join(node.kind_name or '?' for node in path))}")
    if function_name:
        console.print(f"  Containing function: {escape(function_name)}")
    if local_var:
        console.print("  Local variable definition: yes")


@app.command("refs")
def refs_command(
    refs_file: Path = typer.Argument(..., help="textDocument/references response (JSON)"),
    symbol: str = typer.Option(..., "--symbol", "-s", help="Symbol name being searched"),
    ast: List[str] = typer.Option([], "--ast", "-a", help="FILE=AST_JSON pairs, one per source file"),
    only: Optional[str] = typer.Option(None, "--only", help="Keep usages with these tags (e.g. write,writable-ref)"),
    categorize: bool = typer.Option(True, "--categorize/--no-categorize", help="Classify usages (off: locations only)"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Classify every reference location clangd reported for a symbol."""
    wanted = _parse_filter(only)
    config = get_config()
    try:
        locations = load_locations(refs_file)
        asts = {}
        for pair in ast:
            source, sep, ast_path = pair.partition('=')
            if not sep or not source or not ast_path:
                raise ValueError(f"--ast expects FILE=AST_JSON, got '{pair}'")
            asts[source] = load_ast(ast_path, config.invokable_markers)
    except (ValueError, OSError) as e:
        _fail(str(e))

    usages = ClangdFindUsages(symbol, categorize=categorize).run(locations, asts)
    usages = filter_usages(usages, wanted)

    if as_json:
        _emit_json(usages)
    else:
        _print_usages(usages, f"Usages of {escape(symbol)}")


@app.command("scan")
def scan_command(
    paths: List[Path] = typer.Argument(..., help="C/C++ files or directories to scan"),
    symbol: str = typer.Option(..., "--symbol", "-s", help="Symbol name to look for"),
    only: Optional[str] = typer.Option(None, "--only", help="Keep usages with these tags (e.g. write,read)"),
    exclude: List[str] = typer.Option([], "--exclude", "-x", help="Extra directory names to skip"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Find and classify usages with the tree-sitter C++ parser (no clangd needed)."""
    from usagescope.analyzer.treesitter_frontend import CppUsageScanner

    wanted = _parse_filter(only)
    config = get_config()
    for path in paths:
        if not path.exists():
            _fail(f"Path does not exist: {path}")

    scanner = CppUsageScanner(config.invokable_macros)
    usages = scanner.scan_paths(paths, symbol, excluded_dirs=config.excluded_dirs + list(exclude))
    usages = filter_usages(usages, wanted)

    if as_json:
        _emit_json(usages)
    else:
        _print_usages(usages, f"Usages of {escape(symbol)}")


@app.command()
def version():
    """Show the usagescope version."""
    console.print(f"usagescope {__version__}")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """usagescope - Find Usages with read/write classification."""
    global console
    try:
        config = get_config()
    except ValueError as e:
        _fail(str(e))

    console = SafeConsole.from_config(config)
    set_log_level("DEBUG" if verbose else config.log_level)


if __name__ == "__main__":
    app()
