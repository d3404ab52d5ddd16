import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer

from .config.settings import Config, ConfigurationError
from .pipeline.export import Exporter, run_export
from .pipeline.source import get_vis_url
from .sql import augment_sql
from .types import DocumentLoadError, ExportError, SqlParseError
from .utils import setup_logging

app = typer.Typer(help="CARTO visualization exporter: viz.json -> layers/<n>/sublayers/<m>/layer.geojson")


def load_settings(env_file: Optional[Path], styles: Optional[bool], concurrency: Optional[int]) -> Config:
    """
    Load configuration and apply command-line overrides.

    Raises:
        ConfigurationError: If configuration or an override is invalid
    """
    config = Config(env_file=env_file)
    if styles is not None:
        config.export.export_styles = styles
    if concurrency is not None:
        if concurrency < 0:
            raise ConfigurationError("--concurrency must be non-negative (0 disables the cap)")
        config.export.max_concurrency = concurrency
    return config


@app.command("export")
def export_command(
    url: Annotated[str, typer.Argument(help="Visualization URL (viz.json or public map page) or local viz.json path")],
    directory: Annotated[Path, typer.Option("--dir", "-d", help="Output directory")] = Path("."),
    styles: Annotated[Optional[bool], typer.Option("--styles/--no-styles", help="Also write style.json for each sublayer")] = None,
    concurrency: Annotated[Optional[int], typer.Option("--concurrency", "-j", help="Maximum concurrent sublayer downloads (0 = no limit)")] = None,
    timeout: Annotated[Optional[float], typer.Option("--timeout", help="Give up on the whole export after this many seconds")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Load settings from this .env file")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
):
    """
    Export a visualization and the data behind each of its sublayers.

    Writes viz.json plus layers/<layer>/sublayers/<sublayer>/layer.geojson
    (and style.json with --styles) under the output directory.

    Examples:
        cdbexport export https://eric.cartodb.com/api/v2/viz/<id>/viz.json -d my_vis
        cdbexport export https://eric.cartodb.com/viz/<id>/public_map --styles
        cdbexport export saved/viz.json -d my_vis -j 4
    """
    log_file = setup_logging(verbose, "export", log_to_file)
    if log_file:
        typer.echo(f"Logging to: {log_file}")

    try:
        config = load_settings(env_file, styles, concurrency)
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Saving visualization in {directory}")
    exporter = Exporter.from_config(directory, config)

    try:
        result = run_export(exporter, url, True, timeout)
    except DocumentLoadError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    except ExportError as e:
        typer.echo(f"ERROR: Export failed: {e}", err=True)
        raise typer.Exit(1)
    except TimeoutError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    except Exception as e:
        logging.error(f"Export failed: {e}")
        if verbose:
            import traceback
            logging.error(f"Full traceback: {traceback.format_exc()}")
        raise typer.Exit(1)

    if not result.ok:
        typer.echo(f"ERROR: {len(result.failures)} sublayer download(s) failed:", err=True)
        for failure in result.failures:
            typer.echo(
                f"  layer {failure.layer_index}, sublayer {failure.sublayer_index} "
                f"({failure.target.value}): {failure.error}",
                err=True,
            )
        raise typer.Exit(1)

    typer.echo(f"Exported visualization to: {directory} ({len(result.results)} file(s))")


@app.command("viz-url")
def viz_url_command(
    map_url: Annotated[str, typer.Argument(help="Public map page URL")],
):
    """
    Print the viz.json URL for a public map page URL.

    Examples:
        cdbexport viz-url https://eric.cartodb.com/viz/<id>/public_map
    """
    viz_url = get_vis_url(map_url)
    if viz_url is None:
        typer.echo(f"ERROR: Not a map page URL: {map_url}", err=True)
        raise typer.Exit(1)
    typer.echo(viz_url)


@app.command("augment-sql")
def augment_sql_command(
    sql: Annotated[Optional[str], typer.Argument(help="SELECT statement (read from stdin if omitted)")] = None,
):
    """
    Print a SELECT statement with the geometry filter applied.

    Examples:
        cdbexport augment-sql "SELECT * FROM my_table WHERE id > 5"
    """
    if sql is None:
        sql = sys.stdin.read()
    try:
        typer.echo(augment_sql(sql))
    except SqlParseError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"cdbexport version: {__version__}")


if __name__ == "__main__":
    app()
