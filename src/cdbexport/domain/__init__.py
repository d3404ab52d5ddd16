"""
Domain Models and Types

This module contains the core domain models and enumerations used throughout the exporter.

Models:
- VisualizationDocument: Loaded visualization JSON with read-only accessors
- LayerGroupOptions: SQL-API settings of a layer-group layer
- Sublayer / SublayerOptions: Query and style of one data series
- SublayerRef: (layer index, sub-layer index) position and destination paths

Enums:
- LayerKind: Layer types (layergroup, tiled, torque, namedmap)
- ExportTarget: Files written per sub-layer (layer.geojson, style.json)
- ExportState: Export run lifecycle
"""

from .enums import ExportState, ExportTarget, LayerKind
from .models import LayerGroupOptions, Sublayer, SublayerOptions, SublayerRef, VisualizationDocument

__all__ = [
    "VisualizationDocument", "LayerGroupOptions", "Sublayer", "SublayerOptions", "SublayerRef",
    "LayerKind", "ExportTarget", "ExportState"
]
