"""
Exporter - Visualization Export Orchestration

Loads a visualization document, saves it as viz.json, then downloads every
layer-group sub-layer concurrently into its own directory:

    <dest>/viz.json
    <dest>/layers/<layer>/sublayers/<sublayer>/layer.geojson
    <dest>/layers/<layer>/sublayers/<sublayer>/style.json   (with styles enabled)

A failed sub-layer download is recorded in the result and never stops its
siblings. Only a failure to load the document aborts the export.
"""

import asyncio
import contextlib
import functools
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, TypeVar

import requests

from ..config.settings import Config, ExportConfig, HttpConfig
from ..domain.enums import ExportState, ExportTarget
from ..domain.models import VisualizationDocument
from ..types import (
    ExportResult,
    FetchError,
    FilesystemError,
    SqlParseError,
    SublayerResult,
)
from ..utils import ensure_directory
from .fetch import SublayerFetcher
from .source import DocumentSource, VisualizationSource
from .transport import create_session
from .walker import for_each_sublayer, sublayer_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUBLAYER_ERRORS = (SqlParseError, FetchError, FilesystemError)


class Exporter:
    """
    Export orchestrator.

    Sub-layer downloads are blocking transport calls; each runs on a worker
    thread while the event loop fans them out and collects their results.
    With ``max_concurrency`` set, at most that many sub-layers download at
    once; otherwise the worker pool size is the only bound.
    """

    def __init__(
        self,
        dest_dir: Path = Path("."),
        http: Optional[HttpConfig] = None,
        export: Optional[ExportConfig] = None,
        session: Optional[requests.Session] = None,
        source: Optional[VisualizationSource] = None,
        fetcher: Optional[SublayerFetcher] = None,
    ):
        """
        Initialize exporter.

        Args:
            dest_dir: Export root directory
            http: Transport settings (defaults to ``HttpConfig()``)
            export: Fan-out settings (defaults to ``ExportConfig()``)
            session: Shared HTTP session for the loader and fetcher
            source: Document loader override
            fetcher: Sub-layer fetcher override
        """
        self.dest_dir = Path(dest_dir)
        self.http = http or HttpConfig()
        self.export = export or ExportConfig()
        session = session or create_session(self.http)
        self.source = source or VisualizationSource(self.http, session)
        self.fetcher = fetcher or SublayerFetcher(self.http, session)

    @classmethod
    def from_config(cls, dest_dir: Path, config: Config, **kwargs) -> "Exporter":
        return cls(dest_dir, http=config.http, export=config.export, **kwargs)

    async def run(self, source: DocumentSource, save_document: bool = True) -> ExportResult:
        """
        Export a visualization.

        Args:
            source: viz.json URL, map page URL, local path, or loaded document
            save_document: Save the document as ``<dest_dir>/viz.json``

        Returns:
            Aggregated result; ``result.ok`` is True only if every download succeeded

        Raises:
            DocumentLoadError: If the document cannot be loaded
            FilesystemError: If the export directory or viz.json cannot be written
        """
        result = ExportResult(dest_dir=self.dest_dir)
        start_time = time.monotonic()
        executor = ThreadPoolExecutor(
            max_workers=self.export.max_concurrency or None,
            thread_name_prefix="cdbexport",
        )
        try:
            result.state = ExportState.LOADING_DOCUMENT
            try:
                ensure_directory(self.dest_dir)
            except OSError as e:
                raise FilesystemError(self.dest_dir, str(e)) from e

            document = await self._in_thread(
                executor, self.source.load, source, self.dest_dir if save_document else None
            )

            result.state = ExportState.WALKING_LAYERS
            result.results = await self.download_all(document, executor)
            result.state = ExportState.COMPLETE
        except (Exception, asyncio.CancelledError):
            result.state = ExportState.FAILED
            raise
        finally:
            # Abandoned downloads (caller timeout) finish in the background
            executor.shutdown(wait=False, cancel_futures=True)
            result.duration_s = time.monotonic() - start_time

        self._log_summary(result)
        return result

    async def download_all(self, document: VisualizationDocument,
                           executor: Optional[ThreadPoolExecutor] = None) -> list[SublayerResult]:
        """Download every sub-layer concurrently; results come back in document order."""
        semaphore = asyncio.Semaphore(self.export.max_concurrency) if self.export.max_concurrency else None

        tasks = for_each_sublayer(
            document,
            lambda layer, layer_index, sublayer, sublayer_index: self._download_sublayer(
                document, layer_index, sublayer_index, semaphore, executor
            ),
        )
        logger.info(f"Downloading {len(tasks)} sublayer(s)")
        outcomes = await asyncio.gather(*tasks)
        return [result for results in outcomes for result in results]

    async def _download_sublayer(self, document: VisualizationDocument, layer_index: int,
                                 sublayer_index: int, semaphore: Optional[asyncio.Semaphore],
                                 executor: Optional[ThreadPoolExecutor]) -> list[SublayerResult]:
        async with semaphore or contextlib.nullcontext():
            results = [await self._run_step(
                self.fetcher.fetch_data, document, layer_index, sublayer_index, ExportTarget.DATA, executor
            )]
            if self.export.export_styles:
                results.append(await self._run_step(
                    self.fetcher.fetch_style, document, layer_index, sublayer_index, ExportTarget.STYLE, executor
                ))
        return results

    async def _run_step(self, step: Callable[..., SublayerResult], document: VisualizationDocument,
                        layer_index: int, sublayer_index: int, target: ExportTarget,
                        executor: Optional[ThreadPoolExecutor]) -> SublayerResult:
        dest = sublayer_path(self.dest_dir, layer_index, sublayer_index, target)
        try:
            return await self._in_thread(executor, step, document, layer_index, sublayer_index, dest)
        except SUBLAYER_ERRORS as e:
            logger.error(f"Layer {layer_index} sublayer {sublayer_index} ({target.value}) failed: {e}")
            return SublayerResult(layer_index, sublayer_index, target, dest, error=e)

    @staticmethod
    async def _in_thread(executor: Optional[ThreadPoolExecutor], func: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(executor, functools.partial(func, *args))

    @staticmethod
    def _log_summary(result: ExportResult) -> None:
        succeeded = len(result.results) - len(result.failures)
        if result.ok:
            logger.info(f"Export completed: {succeeded} file(s) in {result.duration_s:.2f}s")
        else:
            logger.warning(
                f"Export completed with {len(result.failures)} failure(s) "
                f"({succeeded} succeeded) in {result.duration_s:.2f}s; "
                f"failed sublayers: {result.failed_coordinates}"
            )


def run_export(exporter: Exporter, source: DocumentSource, save_document: bool = True,
               timeout: Optional[float] = None) -> ExportResult:
    """
    Run an export to completion on a fresh event loop.

    Raises:
        TimeoutError: If ``timeout`` seconds pass first; in-flight downloads are abandoned
    """
    async def _run() -> ExportResult:
        return await asyncio.wait_for(exporter.run(source, save_document), timeout)

    try:
        return asyncio.run(_run())
    except asyncio.TimeoutError as e:
        raise TimeoutError(f"Export did not finish within {timeout} seconds") from e


def export_visualization(
    url_or_path: DocumentSource,
    dest_dir: Path = Path("."),
    timeout: Optional[float] = None,
    **kwargs,
) -> ExportResult:
    """
    Export a visualization and all of its sub-layer data.

    Args:
        url_or_path: viz.json URL, map page URL, or local viz.json path
        dest_dir: Directory to export into (created if needed)
        timeout: Overall deadline in seconds; on expiry ``TimeoutError`` is
            raised and in-flight downloads are abandoned
        **kwargs: Passed to ``Exporter``

    Returns:
        Aggregated export result

    Raises:
        DocumentLoadError: If the document cannot be loaded
        FilesystemError: If the export directory cannot be written

    Example:
        export_visualization(
            'https://eric.cartodb.com/api/v2/viz/85c59718-082c-11e3-86d3-5404a6a69006/viz.json',
            Path('my_vis'),
        )
    """
    exporter = Exporter(Path(dest_dir), **kwargs)
    return run_export(exporter, url_or_path, True, timeout)


def download_visualization_data(
    document_or_path: DocumentSource,
    dest_dir: Path = Path("."),
    timeout: Optional[float] = None,
    **kwargs,
) -> ExportResult:
    """
    Download the sub-layer data of an already-available visualization.

    Unlike ``export_visualization`` the document is not saved; pass a loaded
    document, parsed JSON, or the path of a local viz.json.
    """
    exporter = Exporter(Path(dest_dir), **kwargs)
    return run_export(exporter, document_or_path, False, timeout)

