"""
Visualization Domain Models

Pydantic models for the parts of a visualization document the exporter reads.
The document itself is kept as raw JSON so it can be saved back unchanged;
these models validate the pieces a sub-layer download depends on.
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import ExportTarget, LayerKind


class SublayerOptions(BaseModel):
    """Query and style configuration of a single sub-layer."""
    sql: Optional[str] = Field(None, description="SQL SELECT statement feeding the sub-layer")
    cartocss: Optional[str] = Field(None, description="CartoCSS style description")
    cartocss_version: Optional[str] = Field(None, description="CartoCSS syntax version")
    interactivity: Optional[Any] = Field(None, description="Interactive fields, unused by the exporter")

    class Config:
        """Pydantic configuration."""
        frozen = True
        extra = "allow"


class Sublayer(BaseModel):
    """One data series within a layer-group layer."""
    type: Optional[str] = Field(None, description="Sub-layer renderer type (cartodb, torque, ...)")
    options: SublayerOptions = Field(default_factory=SublayerOptions, description="Sub-layer options")

    class Config:
        """Pydantic configuration."""
        frozen = True
        extra = "allow"


class LayerGroupOptions(BaseModel):
    """SQL-API settings of a layer-group layer."""
    sql_api_template: str = Field(..., description="SQL-API base URL with a {user} placeholder")
    sql_api_endpoint: str = Field(..., description="SQL-API path appended to the template")
    user_name: str = Field(..., description="Account name substituted into the template")

    class Config:
        """Pydantic configuration."""
        frozen = True
        extra = "allow"

    @property
    def sql_url(self) -> str:
        """Query endpoint for this layer's sub-layers."""
        return f"{self.sql_api_template}{self.sql_api_endpoint}".replace("{user}", self.user_name)


class SublayerRef(BaseModel):
    """Structural position of a sub-layer within a document."""
    layer_index: int = Field(..., ge=0)
    sublayer_index: int = Field(..., ge=0)

    class Config:
        """Pydantic configuration."""
        frozen = True

    def directory(self, dest_dir: Path) -> Path:
        return Path(dest_dir) / "layers" / str(self.layer_index) / "sublayers" / str(self.sublayer_index)

    def path(self, dest_dir: Path, target: ExportTarget = ExportTarget.DATA) -> Path:
        return self.directory(dest_dir) / target.filename


class VisualizationDocument(BaseModel):
    """A loaded visualization document.

    ``raw`` is the parsed JSON exactly as received; ``layers`` is its top-level
    layer list. Nothing in the exporter mutates either.
    """
    raw: dict[str, Any] = Field(..., description="Parsed visualization JSON")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @property
    def layers(self) -> list[Any]:
        layers = self.raw.get("layers")
        return layers if isinstance(layers, list) else []

    @property
    def title(self) -> Optional[str]:
        return self.raw.get("title")

    def layer(self, layer_index: int) -> dict[str, Any]:
        return self.layers[layer_index]

    def layer_kind(self, layer_index: int) -> Optional[LayerKind]:
        layer = self.layers[layer_index]
        kind = layer.get("type") if isinstance(layer, dict) else None
        try:
            return LayerKind(kind)
        except ValueError:
            return None

    def layer_options(self, layer_index: int) -> LayerGroupOptions:
        return LayerGroupOptions.model_validate(self.layer(layer_index).get("options") or {})

    def raw_sublayers(self, layer_index: int) -> list[Any]:
        """Sub-layer list of a layer, or an empty list when absent or malformed."""
        layer = self.layers[layer_index]
        if not isinstance(layer, dict):
            return []
        options = layer.get("options")
        if not isinstance(options, dict):
            return []
        definition = options.get("layer_definition")
        if not isinstance(definition, dict):
            return []
        sublayers = definition.get("layers")
        return sublayers if isinstance(sublayers, list) else []

    def sublayer(self, layer_index: int, sublayer_index: int) -> Sublayer:
        raw = self.raw_sublayers(layer_index)[sublayer_index]
        return Sublayer.model_validate(raw if isinstance(raw, dict) else {})
