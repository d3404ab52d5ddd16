"""
VisualizationSource - Visualization Document Loading

Resolves every supported document source (remote URL, local file, or an
already-loaded document) into a ``VisualizationDocument`` in one place, so
downstream stages never see a path or a pending download.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Optional, Union
from urllib.parse import urlparse

import requests

from ..config.settings import HttpConfig
from ..domain.models import VisualizationDocument
from ..types import DocumentLoadError, FilesystemError
from ..utils import ensure_directory, load_json_file, partial_path, remove_quietly, replace_file
from .transport import create_session, fetch_bytes

logger = logging.getLogger(__name__)

VIZ_FILENAME = "viz.json"

# Public map pages: https://<user>.cartodb.com/viz/<map id>/public_map (or /map)
_MAP_URL_RE = re.compile(r"https?://(\S+)\.cartodb\.com/viz/(\S+)/(?:public_)?map")

DocumentSource = Union[str, Path, dict, VisualizationDocument]


def get_vis_url(url: str) -> Optional[str]:
    """
    Convert a map's page URL into the viz.json URL for that map.

    Args:
        url: The map's public page URL

    Returns:
        The viz.json URL, or None if ``url`` is not a map page URL
    """
    match = _MAP_URL_RE.match(url)
    if not match:
        return None
    user, map_id = match.group(1), match.group(2)
    return f"https://{user}.cartodb.com/api/v2/viz/{map_id}/viz.json"


def is_remote(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


class VisualizationSource:
    """
    Loads visualization documents.

    When a destination directory is given the document is also written there
    as ``viz.json``: fetched and local documents byte for byte, in-memory
    documents as indented JSON.
    """

    def __init__(self, http: Optional[HttpConfig] = None, session: Optional[requests.Session] = None):
        self.http = http or HttpConfig()
        self.session = session or create_session(self.http)

    def load(self, source: DocumentSource, dest_dir: Optional[Path] = None) -> VisualizationDocument:
        """
        Load a visualization document.

        Args:
            source: viz.json URL, map page URL, local JSON path, parsed JSON
                dict, or an already-loaded document
            dest_dir: Directory to save the document into as viz.json

        Returns:
            The loaded document

        Raises:
            DocumentLoadError: If the document cannot be fetched, read or parsed
            FilesystemError: If the document cannot be saved
        """
        if isinstance(source, (VisualizationDocument, dict)):
            document = source if isinstance(source, VisualizationDocument) else VisualizationDocument(raw=source)
            if dest_dir is not None:
                self._save(json.dumps(document.raw, indent=2).encode("utf-8"), Path(dest_dir) / VIZ_FILENAME)
            return document

        source_str = str(source)
        if is_remote(source_str):
            return self.fetch(source_str, dest_dir)
        return self.read(Path(source_str), dest_dir)

    def fetch(self, url: str, dest_dir: Optional[Path] = None) -> VisualizationDocument:
        """Fetch a document over HTTP, saving the body as ``dest_dir/viz.json``."""
        viz_url = get_vis_url(url) or url
        if viz_url != url:
            logger.info(f"Resolved map page to {viz_url}")

        logger.info(f"Downloading visualization from {viz_url}")
        try:
            body = fetch_bytes(self.session, viz_url, self.http)
        except requests.RequestException as e:
            raise DocumentLoadError(viz_url, str(e)) from e

        document = VisualizationDocument(raw=self._parse(viz_url, body))
        logger.info(f"Visualization has {len(document.layers)} layer(s), {len(body):,} bytes")

        if dest_dir is not None:
            self._save(body, Path(dest_dir) / VIZ_FILENAME)
        return document

    def read(self, path: Path, dest_dir: Optional[Path] = None) -> VisualizationDocument:
        """Read a document from a local JSON file, copying it to ``dest_dir/viz.json``."""
        try:
            data = load_json_file(path)
        except FileNotFoundError as e:
            raise DocumentLoadError(str(path), "file not found") from e
        except ValueError as e:
            raise DocumentLoadError(str(path), f"invalid JSON: {e}") from e
        except OSError as e:
            raise DocumentLoadError(str(path), str(e)) from e

        if not isinstance(data, dict):
            raise DocumentLoadError(str(path), "document is not a JSON object")
        logger.info(f"Loaded visualization from {path}")

        if dest_dir is not None:
            copy_path = Path(dest_dir) / VIZ_FILENAME
            if not copy_path.exists() or not copy_path.samefile(path):
                self._save(path.read_bytes(), copy_path)
        return VisualizationDocument(raw=data)

    @staticmethod
    def _parse(source: str, body: bytes) -> dict[str, Any]:
        try:
            data = json.loads(body)
        except ValueError as e:
            raise DocumentLoadError(source, f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DocumentLoadError(source, "document is not a JSON object")
        return data

    @staticmethod
    def _save(body: bytes, path: Path) -> None:
        tmp_path = partial_path(path)
        try:
            ensure_directory(path.parent)
            with open(tmp_path, "wb") as f:
                f.write(body)
            replace_file(tmp_path, path)
        except OSError as e:
            remove_quietly(tmp_path)
            raise FilesystemError(path, str(e)) from e
        logger.info(f"Saved visualization to {path}")
