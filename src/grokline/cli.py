#!/usr/bin/env python3
"""grokline command line interface"""
import json
import sys

import rich_click as click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich_click import RichGroup

from . import __version__
from .core.config import ConfigurationError, get_config, load_config, setup_logging
from .core.logging import LogContext, set_package_log_level
from .patterns import (
    GrokCompiler,
    GrokError,
    GrokMatcher,
    PatternCatalog,
    PatternStoreError,
    field_key,
    set_max_input_length,
)

# Set up rich-click configuration globally
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.SHOW_METAVARS_COLUMN = False
click.rich_click.APPEND_METAVARS_HELP = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "#ff5555"
click.rich_click.ERRORS_SUGGESTION = "Try running the '--help' flag for more information."
click.rich_click.MAX_WIDTH = 120
click.rich_click.STYLE_OPTION = "#ff79c6"  # Dracula Pink - for option flags
click.rich_click.STYLE_SWITCH = "#50fa7b"  # Dracula Green - for switches
click.rich_click.STYLE_HEADER_TEXT = "bold yellow"
click.rich_click.STYLE_USAGE = "#BD93F9"
click.rich_click.STYLE_COMMAND = "#50fa7b"
click.rich_click.COMMAND_GROUPS = {
    "grokline": [
        {"name": "Parsing", "commands": ["match", "compile"]},
        {"name": "Pattern Catalog", "commands": ["groups", "show", "search"]},
        {"name": "Diagnostics", "commands": ["stats"]},
    ]
}

logger = setup_logging(__name__)
console = Console()
err_console = Console(stderr=True)


def _fail(message: str) -> None:
    err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.exit(1)


def _build_compiler(ctx: click.Context, groups, definitions) -> GrokCompiler:
    config = ctx.obj["config"]
    selected = list(config.default_groups)
    for group in groups:
        if group not in selected:
            selected.append(group)
    try:
        compiler = GrokCompiler.from_config(config, groups=selected)
        for path in definitions:
            compiler.register_file(path)
    except (PatternStoreError, OSError) as e:
        _fail(str(e))
    return compiler


@click.group(name="grokline", cls=RichGroup, context_settings={"help_option_names": ["-h", "--help"], "max_content_width": 120})
@click.version_option(version=__version__, prog_name="grokline")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a grokline.json config file")
@click.option("--debug", is_flag=True, help="Enable detailed debug logging")
@click.pass_context
def main(ctx, config_path=None, debug=False):
    """[bold color(6)]grokline[/bold color(6)] - parse log lines with grok patterns

    \b
    [green]   grokline match '%{IP:client} %{WORD:verb}' access.log  [/green]
    [green]   grokline compile '%{COMMONAPACHELOG}' -g httpd          [/green]
    [green]   grokline groups                                         [/green]
    """
    try:
        config = load_config(config_path) if config_path else get_config()
        set_max_input_length(config.max_input_length)
        # Module loggers already exist; apply the level of the config in use
        set_package_log_level("DEBUG" if debug else config.log_level)
    except (ConfigurationError, ValueError) as e:
        _fail(str(e))
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.argument("pattern")
@click.argument("input_file", type=click.File("r", encoding="utf-8"), default="-")
@click.option("-g", "--group", "groups", multiple=True, help="Extra built-in pattern group to load (repeatable)")
@click.option("-d", "--definitions", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Pattern definition file to register (repeatable)")
@click.option("--max-input-length", type=int, help="Maximum accepted line length (0 disables the check)")
@click.option("--drop-empty", is_flag=True, help="Omit fields whose groups did not participate")
@click.option("--flat", is_flag=True, help="Emit nested fields as [a][b] keys")
@click.option("--only-matches", is_flag=True, help="Skip lines that do not match instead of printing null")
@click.pass_context
def match(ctx, pattern, input_file, groups, definitions, max_input_length, drop_empty, flat, only_matches):
    """Match each input line and print one JSON record per line"""
    config = ctx.obj["config"]
    if max_input_length is not None:
        try:
            set_max_input_length(max_input_length)
        except ValueError as e:
            _fail(str(e))

    compiler = _build_compiler(ctx, groups, definitions)
    matcher = GrokMatcher.from_config(config)
    if drop_empty:
        matcher.keep_empty_captures = False

    source = getattr(input_file, "name", "<stdin>")
    matched = total = 0
    with compiler, LogContext(source=source, pattern=pattern):
        try:
            compiled = compiler.compile(pattern)
        except GrokError as e:
            _fail(str(e))

        for lineno, line in enumerate(input_file, start=1):
            total += 1
            try:
                result = matcher.match(compiled, line.rstrip("\r\n"))
            except GrokError as e:
                logger.warning(f"Line {lineno} skipped: {e}")
                continue
            if result is None:
                if not only_matches:
                    click.echo("null")
                continue
            matched += 1
            click.echo(json.dumps(result.flattened() if flat else result.fields, ensure_ascii=False))

        matcher.release_context()
    logger.debug(f"Matched {matched}/{total} lines from {source}")


@main.command("compile")
@click.argument("pattern")
@click.option("-g", "--group", "groups", multiple=True, help="Extra built-in pattern group to load (repeatable)")
@click.option("-d", "--definitions", multiple=True, type=click.Path(exists=True, dir_okay=False), help="Pattern definition file to register (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output the expansion as JSON")
@click.pass_context
def compile_pattern(ctx, pattern, groups, definitions, as_json):
    """Show the expanded regex and the capture group -> field mapping"""
    compiler = _build_compiler(ctx, groups, definitions)
    with compiler:
        try:
            compiled = compiler.compile(pattern)
        except GrokError as e:
            _fail(str(e))

    fields = [
        {"group": index, "field": field_key(path), "type": compiled.group_type_map.get(index, "string")}
        for index, path in compiled.group_field_map.items()
    ]
    if as_json:
        click.echo(json.dumps({"pattern": pattern, "regex": compiled.regex.pattern, "fields": fields}, indent=2))
        return

    console.print(f"[bold]Regex[/bold] ({compiled.regex.groups} groups)")
    console.print(compiled.regex.pattern, markup=False, highlight=False)
    table = Table(title="Fields", show_header=True, header_style="bold magenta")
    table.add_column("Group", justify="right", style="cyan")
    table.add_column("Field", style="green")
    table.add_column("Type", style="yellow")
    for entry in fields:
        table.add_row(str(entry["group"]), entry["field"], entry["type"])
    console.print(table)


@main.command()
def groups():
    """List the built-in pattern groups by category"""
    catalog = PatternCatalog()
    counts = catalog.statistics().group_counts
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Category", style="yellow")
    table.add_column("Group", style="green")
    table.add_column("Patterns", justify="right", style="cyan")
    table.add_column("Description")
    for category, infos in catalog.groups_by_category().items():
        for info in infos:
            table.add_row(category, info.file_name, str(counts.get(info.name, 0)), info.description)
    console.print(table)


@main.command()
@click.argument("group")
@click.argument("name", required=False)
def show(group, name):
    """Print a group's definitions, or a single definition"""
    catalog = PatternCatalog()
    try:
        if name is not None:
            info = catalog.get_pattern(group, name)
            if info is None:
                _fail(f"No pattern {name} in group {group}")
            click.echo(info.definition)
            return
        details = catalog.group_details(group)
    except PatternStoreError as e:
        _fail(str(e))

    for pattern_name, body in details.patterns.items():
        click.echo(f"{pattern_name} {body}")


@main.command()
@click.argument("name")
def search(name):
    """Find which groups define a pattern"""
    results = PatternCatalog().search(name)
    if not results:
        _fail(f"Pattern {name} not found in any group")
    for info in results:
        click.echo(f"{info.group_name}: {info.name} {info.definition}")


@main.command()
@click.pass_context
def stats(ctx):
    """Pattern catalog statistics and cache settings"""
    config = ctx.obj["config"]
    statistics = PatternCatalog().statistics()
    console.print(f"[bold]Pattern groups:[/bold] {statistics.total_groups}")
    console.print(f"[bold]Pattern definitions:[/bold] {statistics.total_patterns}")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Group", style="green")
    table.add_column("Patterns", justify="right", style="cyan")
    for group_name, count in statistics.group_counts.items():
        table.add_row(group_name, str(count))
    console.print(table)
    console.print(
        f"[bold]Cache:[/bold] max_size={config.cache_max_size} hard_limit={config.cache_hard_limit} "
        f"memory_threshold={config.cache_memory_threshold:.0%}"
    )
    console.print(f"[bold]Max input length:[/bold] {config.max_input_length}")


if __name__ == "__main__":
    main()
