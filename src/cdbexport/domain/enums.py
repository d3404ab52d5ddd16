"""
Export Enumerations

Core enums for type safety and clear interface definitions across the pipeline.
"""

from enum import Enum


class LayerKind(str, Enum):
    """Layer types found in a visualization document."""
    LAYERGROUP = "layergroup"   # Aggregates queryable sub-layers
    TILED = "tiled"             # Basemap tiles, nothing to export
    TORQUE = "torque"           # Animated layer, not exported
    NAMEDMAP = "namedmap"       # Server-side named map, not exported


class ExportTarget(str, Enum):
    """Files written for each sub-layer."""
    DATA = "layer.geojson"      # Sub-layer features as GeoJSON
    STYLE = "style.json"        # Renderer-neutral style document

    @property
    def filename(self) -> str:
        return self.value


class ExportState(str, Enum):
    """Lifecycle of a single export run."""
    IDLE = "idle"
    LOADING_DOCUMENT = "loading_document"
    WALKING_LAYERS = "walking_layers"
    COMPLETE = "complete"
    FAILED = "failed"
