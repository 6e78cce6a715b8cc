#!/usr/bin/env python3
"""
graphmeta - Main CLI Entry Point

Profiles the labels, relationship types and properties of a Neo4j graph,
and exports it as Cypher scripts or CSV files (and loads CSV back).
"""

import json
import sys
from contextlib import contextmanager

import click
from rich.console import Console
from rich.table import Table

from config import get_settings
from utils import setup_logger
from utils.logger import ROOT_LOGGER_NAME, get_logger

console = Console()
logger = get_logger(__name__)


@contextmanager
def open_store():
    """Connect to the configured Neo4j database and yield a ``Neo4jGraphStore``."""
    from graph import Neo4jConnection, Neo4jGraphStore

    settings = get_settings()
    connection = Neo4jConnection(
        uri=settings.neo4j_uri,
        user=settings.neo4j_user,
        password=settings.neo4j_password,
        database=settings.neo4j_database,
    )
    try:
        connection.connect()
    except Exception as e:
        console.print(f"[bold red]Failed to connect to Neo4j:[/bold red] {str(e)}")
        console.print("Please check your connection settings and ensure Neo4j is running.\n")
        sys.exit(1)
    try:
        yield Neo4jGraphStore(connection)
    finally:
        connection.close()


def _parse_options(raw):
    """``--config`` values are JSON maps of camelCase options."""
    if not raw:
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}")
    if not isinstance(options, dict):
        raise click.BadParameter("must be a JSON object")
    return options


def _fail(what, error):
    console.print(f"\n[bold red]Error:[/bold red] {str(error)}\n")
    logger.error(f"{what} failed: {str(error)}", exc_info=True)
    sys.exit(1)


def _print_progress(info):
    table = Table(title="Export summary")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="yellow")
    for key, value in info.to_dict().items():
        if key == "data":
            continue
        table.add_row(key, str(value))
    console.print(table)


@click.group()
@click.version_option(version="0.1.0", prog_name="graphmeta")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
def cli(log_level):
    """
    graphmeta - Graph metadata profiling and export.

    Reads statistics and per-label metadata from Neo4j, builds the
    label/type meta-graph, and exports graphs as Cypher or CSV.
    """
    settings = get_settings()

    if log_level:
        settings.log_level = log_level

    setup_logger(
        name=ROOT_LOGGER_NAME,
        level=settings.log_level,
        log_file=settings.log_file,
    )


@cli.command()
def config():
    """Show current configuration."""
    settings = get_settings()

    console.print("\n[bold cyan]graphmeta Configuration[/bold cyan]\n")

    config_dict = settings.to_dict()

    # Don't show password in output
    if "neo4j_password" in config_dict:
        config_dict["neo4j_password"] = "***"

    for key, value in config_dict.items():
        console.print(f"[yellow]{key}[/yellow]: {value}")

    console.print()


@cli.command()
def stats():
    """Show label and relationship-type counts."""
    from meta import StatsAggregator

    try:
        with open_store() as store:
            result = StatsAggregator(store).collect()
    except Exception as e:
        _fail("Stats", e)

    console.print(f"\n[yellow]Nodes:[/yellow] {result.node_count}")
    console.print(f"[yellow]Relationships:[/yellow] {result.rel_count}")
    console.print(f"[yellow]Labels:[/yellow] {result.label_count}")
    console.print(f"[yellow]Relationship types:[/yellow] {result.rel_type_count}")
    console.print(f"[yellow]Property keys:[/yellow] {result.property_key_count}\n")

    table = Table(title="Labels")
    table.add_column("Label", style="cyan")
    table.add_column("Count", style="yellow", justify="right")
    for label, count in sorted(result.labels.items()):
        table.add_row(label, str(count))
    console.print(table)

    table = Table(title="Relationship patterns")
    table.add_column("Pattern", style="cyan")
    table.add_column("Count", style="yellow", justify="right")
    for pattern, count in sorted(result.rel_types.items()):
        table.add_row(pattern, str(count))
    console.print(table)
    console.print()


@cli.command()
@click.option("--sample", type=int, help="Nodes sampled per label by the existence check")
@click.option("--max-rels", type=int, help="Relationships inspected per sampled node")
@click.option("--no-prune", is_flag=True, help="Keep every candidate pattern without probing")
@click.option("--json", "as_json", is_flag=True, help="Print the meta-graph as JSON")
def metagraph(sample, max_rels, no_prune, as_json):
    """Show the label/relationship-type meta-graph."""
    from meta import MetaConfig, MetaGraphBuilder, SampleMetaConfig

    settings = get_settings()
    meta_config = MetaConfig(sampling=SampleMetaConfig(
        sample=sample if sample is not None else settings.sample_size,
        max_rels=max_rels if max_rels is not None else settings.max_rels,
    ))

    try:
        with open_store() as store:
            graph = MetaGraphBuilder(store, meta_config).build(prune=not no_prune)
    except Exception as e:
        _fail("Meta-graph", e)

    if as_json:
        click.echo(json.dumps(graph.to_dict(), indent=2, default=str))
        return

    table = Table(title=f"Meta-graph ({len(graph.nodes)} labels, {len(graph.relationships)} patterns)")
    table.add_column("From", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("To", style="cyan")
    table.add_column("Count", style="yellow", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("In", justify="right")
    for rel in graph.relationships:
        props = rel.properties
        table.add_row(
            rel.start_node.labels[0],
            rel.type,
            rel.end_node.labels[0],
            str(props.get("count", "")),
            str(props.get("out", "")),
            str(props.get("in", "")),
        )
    console.print(table)
    console.print()


@cli.command()
@click.option("--sample", type=int, help="Desired sample size per label (-1 scans everything)")
@click.option("--include-label", "include_labels", multiple=True, help="Only these labels")
@click.option("--exclude-label", "exclude_labels", multiple=True, help="Skip these labels")
def metadata(sample, include_labels, exclude_labels):
    """Show sampled property and relationship metadata per label."""
    from meta import MetaConfig, MetaItemCollector, SampleMetaConfig

    settings = get_settings()
    meta_config = MetaConfig(
        include_labels=list(include_labels),
        exclude_labels=list(exclude_labels),
        sampling=SampleMetaConfig(sample=sample if sample is not None else settings.sample_size),
    )

    try:
        with open_store() as store:
            rows = MetaItemCollector(store, meta_config).rows()
    except Exception as e:
        _fail("Metadata", e)

    if not rows:
        console.print("[yellow]No metadata found[/yellow]\n")
        return

    table = Table(title=f"Metadata ({len(rows)} rows)")
    table.add_column("Label", style="cyan")
    table.add_column("Property", style="green")
    table.add_column("Type", style="yellow")
    table.add_column("Element", style="magenta")
    table.add_column("Unique")
    table.add_column("Indexed")
    table.add_column("Exists")
    table.add_column("Other", style="blue")
    for row in rows:
        table.add_row(
            row.label,
            row.property,
            row.type or "",
            row.element_type or "",
            "✓" if row.unique else "",
            "✓" if row.index else "",
            "✓" if row.existence else "",
            ", ".join(row.other),
        )
    console.print(table)
    console.print()


@cli.command()
@click.option("--sample", type=int, help="Desired sample size per label (-1 scans everything)")
def schema(sample):
    """Print a per-label / per-type schema description as JSON."""
    from meta import MetaConfig, MetaItemCollector, SampleMetaConfig, StatsAggregator, build_schema

    settings = get_settings()
    meta_config = MetaConfig(
        sampling=SampleMetaConfig(sample=sample if sample is not None else settings.sample_size)
    )

    try:
        with open_store() as store:
            description = build_schema(
                MetaItemCollector(store, meta_config).collect(),
                StatsAggregator(store).collect(),
            )
    except Exception as e:
        _fail("Schema", e)

    click.echo(json.dumps(description, indent=2, default=str))


def _export(export_type, output, query, config_json, extra):
    from export import GraphExportEngine
    from graph import DatabaseSource, QuerySource

    options = _parse_options(config_json)
    options.update({k: v for k, v in extra.items() if v is not None})
    source = QuerySource(query) if query else DatabaseSource()

    console.print(f"\n[bold cyan]Exporting {export_type}[/bold cyan]")
    console.print(f"[yellow]Source:[/yellow] {query or 'whole database'}")
    console.print(f"[yellow]Output:[/yellow] {output or 'stdout'}\n")

    try:
        with open_store() as store:
            info = GraphExportEngine(store).export(source, export_type, output, options)
    except Exception as e:
        _fail("Export", e)

    if output is None:
        data = info.data
        if isinstance(data, dict):
            for name, text in data.items():
                click.echo(f"// {name}")
                click.echo(text, nl=False)
        elif data:
            click.echo(data, nl=False)
    else:
        console.print(f"[green]✓ Export written to {info.file}[/green]\n")
    _print_progress(info)


@cli.command("export-cypher")
@click.option("--output", "-o", help="Output file (relative paths go under EXPORT_DIR); stdout when omitted")
@click.option("--query", "-q", help="Export what this Cypher statement returns instead of the whole database")
@click.option("--format", "fmt", type=click.Choice(["cypher-shell", "neo4j-shell", "plain"]), help="Script dialect")
@click.option(
    "--cypher-format",
    type=click.Choice(["create", "updateAll", "addStructure", "updateStructure"]),
    help="Statement style",
)
@click.option("--batch-size", type=int, help="Entities per transaction block")
@click.option("--separate-files", is_flag=True, default=None, help="One file per section")
@click.option("--config", "config_json", help="Further options as a JSON object")
def export_cypher(output, query, fmt, cypher_format, batch_size, separate_files, config_json):
    """Export the graph as a Cypher script."""
    _export("cypher", output, query, config_json, {
        "format": fmt,
        "cypherFormat": cypher_format,
        "batchSize": batch_size,
        "separateFiles": separate_files,
    })


@cli.command("export-csv")
@click.option("--output", "-o", help="Output file (relative paths go under EXPORT_DIR); stdout when omitted")
@click.option("--query", "-q", help="Export this Cypher statement's result table")
@click.option("--quotes", type=click.Choice(["always", "none", "ifNeeded"]), help="Quoting policy")
@click.option("--bulk-import", is_flag=True, default=None, help="neo4j-admin files per label set and type")
@click.option("--use-types", is_flag=True, default=None, help="Type-annotated header")
@click.option("--batch-size", type=int, help="Entities per progress batch")
@click.option("--config", "config_json", help="Further options as a JSON object")
def export_csv(output, query, quotes, bulk_import, use_types, batch_size, config_json):
    """Export the graph or a query result as CSV."""
    _export("csv", output, query, config_json, {
        "quotes": quotes,
        "bulkImport": bulk_import,
        "useTypes": use_types,
        "batchSize": batch_size,
    })


@cli.command("export-json")
@click.option("--output", "-o", help="Output file (relative paths go under EXPORT_DIR); stdout when omitted")
@click.option("--query", "-q", help="Export this Cypher statement's result records")
@click.option(
    "--json-format",
    type=click.Choice(["JSON_LINES", "ARRAY_JSON", "JSON"]),
    help="One record per line, one array, or a nodes/rels document",
)
@click.option("--write-node-properties", is_flag=True, default=None, help="Include endpoint properties in relationships")
@click.option("--batch-size", type=int, help="Entities per progress batch")
@click.option("--config", "config_json", help="Further options as a JSON object")
def export_json(output, query, json_format, write_node_properties, batch_size, config_json):
    """Export the graph or a query result as JSON."""
    _export("json", output, query, config_json, {
        "jsonFormat": json_format,
        "writeNodeProperties": write_node_properties,
        "batchSize": batch_size,
    })


@cli.command("import-csv")
@click.option(
    "--nodes", "node_files", multiple=True,
    help="Node file, optionally followed by labels: path[:Label1:Label2]",
)
@click.option(
    "--relationships", "rel_files", multiple=True,
    help="Relationship file, optionally followed by a type: path[:TYPE]",
)
@click.option("--delimiter", default=",", help="Field delimiter")
@click.option("--array-delimiter", default=";", help="Array element delimiter")
@click.option("--ignore-duplicate-nodes", is_flag=True, help="Skip repeated node ids instead of failing")
@click.option("--batch-size", type=int, default=2000, help="Rows per write transaction")
@click.option("--clear", is_flag=True, help="Delete existing nodes and relationships before importing")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt when clearing data")
def import_csv(node_files, rel_files, delimiter, array_delimiter, ignore_duplicate_nodes, batch_size, clear, yes):
    """Load neo4j-admin style CSV files."""
    from export import CsvLoader, CsvLoaderConfig

    def split(entry):
        path, _, rest = entry.partition(":")
        return path, [part for part in rest.split(":") if part]

    nodes = []
    for entry in node_files:
        path, labels = split(entry)
        nodes.append({"fileName": path, "labels": labels})
    rels = []
    for entry in rel_files:
        path, types = split(entry)
        rels.append({"fileName": path, "type": types[0] if types else None})

    if not nodes and not rels:
        console.print("[yellow]Nothing to import; pass --nodes and/or --relationships[/yellow]\n")
        return

    if clear and not yes:
        console.print("[bold red]WARNING:[/bold red] This will delete all existing data!")
        if not click.confirm("Are you sure you want to continue?"):
            console.print("[yellow]Aborted[/yellow]\n")
            return

    try:
        loader_config = CsvLoaderConfig.from_dict({
            "delimiter": delimiter,
            "arrayDelimiter": array_delimiter,
            "ignoreDuplicateNodes": ignore_duplicate_nodes,
            "batchSize": batch_size,
        })
        with open_store() as store:
            if clear:
                deleted = store.clear()
                console.print(f"[yellow]Cleared {deleted} existing nodes[/yellow]")
            info = CsvLoader(store, loader_config).load(nodes, rels)
    except Exception as e:
        _fail("Import", e)

    console.print(
        f"\n[green]✓ Imported {info.nodes} nodes and {info.relationships} relationships "
        f"({info.properties} properties)[/green]\n"
    )


if __name__ == "__main__":
    cli()
