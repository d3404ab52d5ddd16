"""
cartodb-export: save a CARTO visualization and the data behind each of its layers.

    from cdbexport import export_visualization
    result = export_visualization(
        "https://eric.cartodb.com/api/v2/viz/85c59718-082c-11e3-86d3-5404a6a69006/viz.json",
        "my_vis",
    )
"""

__version__ = "0.1.0"

from .pipeline import (
    Exporter,
    download_visualization_data,
    export_visualization,
    get_vis_url,
)
from .sql import augment_sql, get_sublayer_sql
from .types import (
    DocumentLoadError,
    ExportError,
    ExportResult,
    FetchError,
    FilesystemError,
    SqlParseError,
    SublayerResult,
)

__all__ = [
    "__version__",
    "Exporter", "export_visualization", "download_visualization_data", "get_vis_url",
    "augment_sql", "get_sublayer_sql",
    "ExportError", "DocumentLoadError", "SqlParseError", "FetchError", "FilesystemError",
    "ExportResult", "SublayerResult",
]
