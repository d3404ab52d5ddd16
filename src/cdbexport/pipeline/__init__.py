"""
Export Pipeline Components

This module provides the export pipeline following the Load -> Walk -> Fetch pattern.

Components:
- source: VisualizationSource for loading the visualization document
- walker: layer-group traversal and per-sub-layer destination paths
- fetch: SublayerFetcher for sub-layer data (GeoJSON) and style downloads
- export: Exporter orchestrating concurrent sub-layer downloads
"""

from .export import Exporter, download_visualization_data, export_visualization, run_export
from .fetch import SublayerFetcher, get_layer_sql_url
from .source import VisualizationSource, get_vis_url
from .walker import for_each_sublayer, iter_sublayers, sublayer_dir, sublayer_path

__all__ = [
    "Exporter", "export_visualization", "download_visualization_data", "run_export",
    "SublayerFetcher", "get_layer_sql_url",
    "VisualizationSource", "get_vis_url",
    "for_each_sublayer", "iter_sublayers", "sublayer_dir", "sublayer_path",
]
