"""
Layer traversal.

Visits every (layer, sub-layer) pair of the layer-group layers in document
order and maps each one to its export directory. Layers of other kinds carry
no queryable data and are skipped; a layer-group whose sub-layer list is
missing or malformed contributes nothing.
"""

import logging
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, TypeVar

from ..domain.enums import ExportTarget, LayerKind
from ..domain.models import SublayerRef, VisualizationDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")

# action(layer, layer_index, sublayer, sublayer_index)
SublayerAction = Callable[[dict[str, Any], int, Any, int], T]


def sublayer_dir(dest_dir: Path, layer_index: int, sublayer_index: int) -> Path:
    """``<dest_dir>/layers/<layer_index>/sublayers/<sublayer_index>``"""
    return SublayerRef(layer_index=layer_index, sublayer_index=sublayer_index).directory(dest_dir)


def sublayer_path(dest_dir: Path, layer_index: int, sublayer_index: int,
                  target: ExportTarget = ExportTarget.DATA) -> Path:
    return sublayer_dir(dest_dir, layer_index, sublayer_index) / target.filename


def iter_sublayers(document: VisualizationDocument) -> Iterator[SublayerRef]:
    """Yield the position of every exportable sub-layer, in document order."""
    for layer_index in range(len(document.layers)):
        kind = document.layer_kind(layer_index)
        if kind != LayerKind.LAYERGROUP:
            logger.debug(f"Skipping layer {layer_index} ({kind.value if kind else 'unknown type'})")
            continue

        sublayers = document.raw_sublayers(layer_index)
        if not sublayers:
            logger.warning(f"Layer {layer_index} has no sublayers to export")
        for sublayer_index in range(len(sublayers)):
            yield SublayerRef(layer_index=layer_index, sublayer_index=sublayer_index)


def for_each_sublayer(document: VisualizationDocument, action: SublayerAction) -> list[T]:
    """
    Invoke ``action`` once per exportable sub-layer.

    Args:
        document: Loaded visualization document
        action: Called as ``action(layer, layer_index, sublayer, sublayer_index)``
            with the raw layer and sub-layer JSON

    Returns:
        The action results, in document order
    """
    results = []
    for ref in iter_sublayers(document):
        layer = document.layer(ref.layer_index)
        sublayer = document.raw_sublayers(ref.layer_index)[ref.sublayer_index]
        results.append(action(layer, ref.layer_index, sublayer, ref.sublayer_index))
    return results
