"""
Dataset Search CLI - command-line interface for the catalog.

Commands:
- db init / db load / db rebuild-view: Manage the catalog database
- index embed / index info: Build and inspect the txtai vector index
- search: Run a search against the catalog
- stats: Display catalog statistics and facets
"""

# Load environment variables before any other imports
# This ensures production paths are available to config modules
from pathlib import Path
from dotenv import load_dotenv

env_path = Path(__file__).parent.parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Standard library imports
import sys
import logging

# Third-party imports
import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from ..api.csv_export import results_to_csv
from ..config.search_config import DATABASE_PATH, LOG_LEVEL, VECTOR_INDEX_PATH
from ..indexing.indexing_service import IndexingService
from ..indexing.vector_index import VectorIndex
from ..ingestion.database import CatalogDatabase, init_database
from ..ingestion.record_loader import RecordLoader
from ..search.query_parser import QueryParser

console = Console()

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _fail(message: str, error: Exception):
    console.print(f"[red]{message}: {error}[/red]\n")
    if LOG_LEVEL == "DEBUG":
        import traceback
        console.print(traceback.format_exc())
    sys.exit(1)


@click.group()
def cli():
    """Dataset Search CLI - Manage the catalog, embeddings and search."""
    pass


# ============================================================================
# Database Commands
# ============================================================================

@cli.group()
def db():
    """Create and populate the catalog database."""
    pass


@db.command(name='init')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_init(db_path):
    """Initialize the database schema."""
    console.print("\n[bold cyan]Initializing Database[/bold cyan]\n")

    try:
        database = init_database(db_path)
        database.close()
        console.print(f"[green]✓[/green] Database initialized at: {db_path}")
        console.print("[green]✓[/green] Schema created successfully\n")
    except Exception as e:
        _fail("Error initializing database", e)


@db.command(name='load')
@click.argument('files', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_load(files, db_path):
    """
    Load catalog records from JSON files.

    Each file holds a list of records or an object with a "datasets" list.
    Records already in the catalog are replaced.
    """
    console.print("\n[bold cyan]Loading Records[/bold cyan]\n")

    database = init_database(db_path)
    loader = RecordLoader(database)

    table = Table(title="Load Results")
    table.add_column("File", style="cyan")
    table.add_column("Seen", style="green")
    table.add_column("Saved", style="green")
    table.add_column("Skipped", style="yellow")

    try:
        for path in files:
            stats = loader.load_file(path)
            table.add_row(path, str(stats['seen']), str(stats['saved']), str(stats['skipped']))
    except Exception as e:
        _fail("Error loading records", e)
    finally:
        database.close()

    console.print(table)
    console.print()


@db.command(name='rebuild-view')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
def db_rebuild_view(db_path):
    """Rebuild the full-text search indexes from the relational tables."""
    console.print("\n[bold cyan]Rebuilding Search View[/bold cyan]\n")

    database = CatalogDatabase(db_path)
    try:
        count = database.rebuild_search_view()
        console.print(f"[green]✓[/green] Search view rebuilt for {count} datasets\n")
    except Exception as e:
        _fail("Error rebuilding search view", e)
    finally:
        database.close()


# ============================================================================
# Index Commands
# ============================================================================

@cli.group()
def index():
    """Manage the vector index of record embeddings."""
    pass


@index.command(name='embed')
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
@click.option('--index-path', '-i', default=VECTOR_INDEX_PATH, help='Vector index directory')
@click.option('--force', '-f', is_flag=True, help='Re-index records that are already indexed')
@click.option('--limit', '-l', type=int, default=None, help='Maximum records to embed')
def index_embed(db_path, index_path, force, limit):
    """
    Embed catalog records into the vector index.

    Records not yet indexed are embedded in batches using the configured
    model (EMBEDDING_MODEL); "synthetic" selects deterministic test vectors.
    The index is saved to --index-path afterwards.
    """
    console.print("\n[bold cyan]Embedding Backfill[/bold cyan]\n")

    database = CatalogDatabase(db_path)
    vector_index = VectorIndex.open(index_path)
    service = IndexingService(database, vector_index)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        ) as progress:
            task = progress.add_task("Embedding records...", total=None)

            def on_progress(done, total):
                progress.update(task, completed=done, total=total)

            stats = service.backfill(force=force, limit=limit, progress_callback=on_progress)

    except Exception as e:
        _fail("Error embedding records", e)
    finally:
        database.close()
        vector_index.close()

    table = Table(title="Embedding Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Records Processed", str(stats['total']))
    table.add_row("Embedded", str(stats['embedded']))
    table.add_row("Failed", str(stats['failed']))
    table.add_row("Model", stats['model'])
    table.add_row("Indexed Total", str(stats['index_count']))
    table.add_row("Duration", f"{stats['duration_seconds']:.2f}s")

    console.print(table)
    console.print()


@index.command(name='info')
@click.option('--index-path', '-i', default=VECTOR_INDEX_PATH, help='Vector index directory')
def index_info(index_path):
    """Show the vector index location, model and size."""
    vector_index = VectorIndex(index_path)
    try:
        if vector_index.exists():
            vector_index.load()
        info = vector_index.info()
    except Exception as e:
        _fail("Could not read vector index", e)
    finally:
        vector_index.close()

    table = Table(title="Vector Index")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Path", str(info['path']))
    table.add_row("Exists", "yes" if info['exists'] else "no")
    table.add_row("Model", info['model'])
    table.add_row("Records", str(info['count']))

    console.print(table)
    console.print()


# ============================================================================
# Search Command
# ============================================================================

@cli.command()
@click.argument('query', required=False, default="")
@click.option('--bbox', help='minLon,minLat,maxLon,maxLat')
@click.option('--polygon', help='"lon lat; lon lat; ..." or a JSON list of pairs')
@click.option('--start', 'time_start', help='Temporal start (YYYY, YYYY-MM or ISO date)')
@click.option('--end', 'time_end', help='Temporal end')
@click.option('--variables', '-v', help='Comma-separated variable names')
@click.option('--format', 'format_', help='Distribution format')
@click.option('--publisher', '-p', help='Publisher (exact, case-insensitive)')
@click.option('--service', help='Access service (HTTP, OPeNDAP, THREDDS, ERDDAP, FTP, S3)')
@click.option('--license', 'license_', help='License')
@click.option('--platform', help='Platform tag')
@click.option('--page', default=1, type=int, help='Page number')
@click.option('--size', '-n', default=10, type=int, help='Results per page')
@click.option('--sort', type=click.Choice(['relevance', 'recency']), default='relevance')
@click.option('--csv', 'as_csv', is_flag=True, help='Print results as CSV')
@click.option('--db-path', default=DATABASE_PATH, help='Database path')
@click.option('--index-path', default=VECTOR_INDEX_PATH, help='Vector index directory')
def search(query, bbox, polygon, time_start, time_end, variables, format_, publisher,
           service, license_, platform, page, size, sort, as_csv, db_path, index_path):
    """
    Search the catalog.

    Example usage:
        dataset-search search "sea surface temperature"
        dataset-search search "chlorophyll" --bbox -130,30,-115,45 --start 2015
        dataset-search search --variables salinity --service ERDDAP --csv
    """
    from ..search.search_engine import SearchEngine

    try:
        parsed = QueryParser().parse({
            "q": query,
            "bbox": bbox,
            "polygon": polygon,
            "time_start": time_start,
            "time_end": time_end,
            "variables": variables,
            "format": format_,
            "publisher": publisher,
            "service": service,
            "license": license_,
            "platform": platform,
            "page": page,
            "size": size,
            "sort": sort,
        })
    except ValueError as e:
        console.print(f"[red]Invalid search options: {e}[/red]\n")
        sys.exit(2)

    engine = SearchEngine(db_path=db_path, index_path=index_path)
    try:
        if as_csv:
            results = engine.search_sync(parsed)
        else:
            console.print(f"\n[bold cyan]Searching for:[/bold cyan] '{parsed.q}'\n")
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console
            ) as progress:
                task = progress.add_task("Searching...", total=None)
                results = engine.search_sync(parsed)
                progress.remove_task(task)
    except Exception as e:
        _fail("Search error", e)
    finally:
        engine.close()

    if as_csv:
        click.echo(results_to_csv(results['results']), nl=False)
        return

    console.print(
        f"[bold green]Found {results['total']} datasets[/bold green] "
        f"(page {results['page']}, showing {len(results['results'])})\n"
    )

    if not results['results']:
        console.print("[yellow]No results found. Try adjusting your query or filters.[/yellow]\n")
        return

    start_rank = (results['page'] - 1) * results['size']
    for i, result in enumerate(results['results'], start_rank + 1):
        console.print(f"[bold cyan]{i}. {result['title']}[/bold cyan]")
        time_range = result['time']
        console.print(
            f"   [dim]{result['publisher'] or 'Unknown publisher'} • "
            f"{time_range['start'] or '?'} – {time_range['end'] or 'ongoing'}[/dim]"
        )
        if result['variables']:
            console.print(f"   [green]Variables:[/green] {', '.join(result['variables'][:8])}")
        services = sorted({d['service'] for d in result['distributions']})
        if services:
            console.print(f"   [blue]Access:[/blue] {', '.join(services)}")
        console.print()


# ============================================================================
# Statistics Command
# ============================================================================

@cli.command()
@click.option('--db-path', '-d', default=DATABASE_PATH, help='Database path')
@click.option('--facets', '-f', default=5, type=int, help='Values shown per facet')
def stats(db_path, facets):
    """Display catalog statistics."""
    console.print("\n[bold cyan]Dataset Catalog Statistics[/bold cyan]\n")

    database = CatalogDatabase(db_path)
    try:
        statistics = database.get_stats()
        facet_counts = database.facet_counts(facets)
    except Exception as e:
        _fail("Could not read catalog", e)
    finally:
        database.close()

    table = Table(title="Catalog Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Datasets", str(statistics['datasets']))
    table.add_row("Indexed", str(statistics['indexed']))
    table.add_row("With Bounding Box", str(statistics['with_bbox']))
    table.add_row("Variables", str(statistics['variables']))
    table.add_row("Distributions", str(statistics['distributions']))

    console.print(table)

    for name, values in facet_counts.items():
        if not values:
            continue
        facet_table = Table(title=f"Top {name.title()}")
        facet_table.add_column("Value", style="cyan", max_width=50)
        facet_table.add_column("Datasets", style="green")
        for item in values:
            facet_table.add_row(str(item['value']), str(item['count']))
        console.print()
        console.print(facet_table)

    console.print()


if __name__ == '__main__':
    cli()
