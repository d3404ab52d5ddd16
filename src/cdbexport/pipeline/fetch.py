"""
SublayerFetcher - Per-Sub-layer Downloads

Downloads one sub-layer's features from its layer's SQL API as GeoJSON, with
the sub-layer query narrowed to rows that have a geometry. The style variant
writes the sub-layer's converted style next to the data file instead.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, Optional

import requests
from pydantic import ValidationError

from ..config.settings import HttpConfig
from ..domain.enums import ExportTarget
from ..domain.models import LayerGroupOptions, VisualizationDocument
from ..sql import get_sublayer_sql
from ..types import FetchError, FilesystemError, SqlParseError, SublayerResult
from ..utils import ensure_directory, write_json_file
from .style import convert_cartocss
from .transport import create_session, stream_to_file

logger = logging.getLogger(__name__)

DATA_FORMAT = "GeoJSON"
# Longer queries are sent as POST form data to stay under URL length limits
MAX_GET_QUERY_LENGTH = 4096

StyleConverter = Callable[[Optional[str], Optional[str]], dict[str, Any]]


def get_layer_sql_url(options: LayerGroupOptions) -> str:
    """SQL-API endpoint of a layer, with the account name substituted for ``{user}``."""
    return options.sql_url


class SublayerFetcher:
    """
    Writes sub-layer data and style files.

    Each method either returns a successful ``SublayerResult`` or raises
    ``SqlParseError``, ``FetchError`` or ``FilesystemError``. Methods are
    blocking and safe to run concurrently for distinct destinations.
    """

    def __init__(
        self,
        http: Optional[HttpConfig] = None,
        session: Optional[requests.Session] = None,
        style_converter: StyleConverter = convert_cartocss,
    ):
        self.http = http or HttpConfig()
        self.session = session or create_session(self.http)
        self.style_converter = style_converter

    def fetch_data(self, document: VisualizationDocument, layer_index: int,
                   sublayer_index: int, dest: Path) -> SublayerResult:
        """
        Download a sub-layer's features to ``dest``.

        Args:
            document: Loaded visualization document
            layer_index: Index of the layer-group layer
            sublayer_index: Index of the sub-layer within the layer
            dest: Destination file, normally ``.../layer.geojson``

        Returns:
            Successful result with the byte count

        Raises:
            SqlParseError: If the sub-layer SQL is missing or unparseable
            FetchError: On layer configuration or transport failures
            FilesystemError: If the destination cannot be written
        """
        try:
            options = document.layer_options(layer_index)
        except ValidationError as e:
            raise FetchError(layer_index, sublayer_index, f"layer has no SQL API settings: {e}") from e

        try:
            sublayer = document.sublayer(layer_index, sublayer_index)
        except ValidationError as e:
            raise SqlParseError("", f"sublayer {sublayer_index} of layer {layer_index} has malformed options: {e}") from e
        query = get_sublayer_sql(sublayer)
        url = get_layer_sql_url(options)
        method = "GET" if len(query) <= MAX_GET_QUERY_LENGTH else "POST"

        self._ensure_parent(dest, layer_index, sublayer_index)
        logger.info(f"Downloading layer {layer_index} sublayer {sublayer_index} from {url}")
        try:
            written = stream_to_file(
                self.session, url, dest, self.http,
                params={"format": DATA_FORMAT, "q": query},
                method=method,
            )
        except requests.RequestException as e:
            raise FetchError(layer_index, sublayer_index, str(e)) from e
        except OSError as e:
            raise FilesystemError(dest, str(e), layer_index, sublayer_index) from e

        logger.info(f"Saved {written:,} bytes to {dest}")
        return SublayerResult(layer_index, sublayer_index, ExportTarget.DATA, dest, written)

    def fetch_style(self, document: VisualizationDocument, layer_index: int,
                    sublayer_index: int, dest: Path) -> SublayerResult:
        """
        Write a sub-layer's converted style to ``dest`` (normally ``.../style.json``).

        Raises:
            FetchError: If the sub-layer options are malformed
            FilesystemError: If the destination cannot be written
        """
        try:
            options = document.sublayer(layer_index, sublayer_index).options
        except ValidationError as e:
            raise FetchError(layer_index, sublayer_index, f"malformed sublayer options: {e}") from e
        style = self.style_converter(options.cartocss, options.cartocss_version)

        self._ensure_parent(dest, layer_index, sublayer_index)
        try:
            written = write_json_file(dest, style)
        except OSError as e:
            raise FilesystemError(dest, str(e), layer_index, sublayer_index) from e

        logger.info(f"Saved style for layer {layer_index} sublayer {sublayer_index} to {dest}")
        return SublayerResult(layer_index, sublayer_index, ExportTarget.STYLE, dest, written)

    @staticmethod
    def _ensure_parent(dest: Path, layer_index: int, sublayer_index: int) -> None:
        try:
            ensure_directory(dest.parent)
        except OSError as e:
            raise FilesystemError(dest.parent, str(e), layer_index, sublayer_index) from e
