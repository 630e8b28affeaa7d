from __future__ import annotations

import itertools
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from spatial_id import VoxelBounds
from viewer.colors import (
    COMPARE_OPACITY,
    RGB,
    build_base_column_map,
    diff_color,
    elevation_color,
)
from viewer.layers import (
    GEOMETRY_FIELDS,
    LayerConfig,
    ViewerCoreState,
    changed_fields,
    merge_layer,
)
from voxel.config import VoxelizerConfig
from voxel.generator import GenerationResult, GeoBounds, VoxelGenerator, target_z_for

logger = logging.getLogger(__name__)

StateCallback = Callable[[ViewerCoreState], None]


class Subscription:
    """Handle returned by :meth:`ViewerController.subscribe`."""

    def __init__(self, registry: dict[int, StateCallback], handle: int) -> None:
        self._registry = registry
        self._handle = handle

    @property
    def handle(self) -> int:
        return self._handle

    @property
    def active(self) -> bool:
        return self._handle in self._registry

    def dispose(self) -> None:
        self._registry.pop(self._handle, None)


@dataclass(frozen=True)
class RenderLayer:
    layer_id: str
    voxels: Sequence[VoxelBounds]
    opacity: float
    colors: Sequence[RGB]


@dataclass(frozen=True)
class VoxelInspection:
    key: str
    altitude: float
    diff: Optional[int] = None


class ViewerController:
    """Owns the layer list and compare settings and keeps voxel sets current.

    Every mutator applies its change, notifies subscribers, and then
    regenerates against the last known viewport when the change can affect
    geometry. Not thread-safe: callers must serialize mutations.
    """

    def __init__(
        self,
        initial_layers: Optional[Iterable[LayerConfig]] = None,
        *,
        generator: Optional[VoxelGenerator] = None,
        config: Optional[VoxelizerConfig] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._config = config or (generator.config if generator else VoxelizerConfig())
        self._generator = generator or VoxelGenerator(config=self._config)
        self._executor = executor

        self._layers: list[LayerConfig] = _unique_layers(initial_layers or [])
        self._layer_voxels: dict[str, tuple[VoxelBounds, ...]] = {}

        self._is_compare_mode = False
        self._base_layer_id = ""
        self._target_layer_id = ""
        if self._layers:
            self._base_layer_id = self._layers[0].id
            self._target_layer_id = (
                self._layers[1].id if len(self._layers) > 1 else self._layers[0].id
            )

        self._resolution_offset = int(self._config.default_resolution_offset)
        self._current_z = int(self._config.min_target_z)

        self._last_bounds: Optional[GeoBounds] = None
        self._last_zoom: Optional[float] = None
        self._generation_seq = 0

        self._subscribers: dict[int, StateCallback] = {}
        self._handles = itertools.count(1)

    # --- Subscriptions ---

    def subscribe(self, callback: StateCallback) -> Subscription:
        if not callable(callback):
            raise TypeError("callback must be callable")
        handle = next(self._handles)
        self._subscribers[handle] = callback
        callback(self.get_state())
        return Subscription(self._subscribers, handle)

    def _emit(self) -> None:
        state = self.get_state()
        for callback in list(self._subscribers.values()):
            callback(state)

    # --- Accessors ---

    def get_state(self) -> ViewerCoreState:
        return ViewerCoreState(
            layers=tuple(self._layers),
            is_compare_mode=self._is_compare_mode,
            base_layer_id=self._base_layer_id,
            target_layer_id=self._target_layer_id,
            resolution_offset=self._resolution_offset,
            current_z=self._current_z,
        )

    @property
    def state(self) -> ViewerCoreState:
        return self.get_state()

    def layer_voxels(self) -> Mapping[str, tuple[VoxelBounds, ...]]:
        return MappingProxyType(dict(self._layer_voxels))

    def _find_layer(self, layer_id: str) -> Optional[LayerConfig]:
        for layer in self._layers:
            if layer.id == layer_id:
                return layer
        return None

    def _has_viewport(self) -> bool:
        return self._last_bounds is not None and self._last_zoom is not None

    def _regenerate(self) -> None:
        if self._last_bounds is not None and self._last_zoom is not None:
            self.generate_voxels(self._last_bounds, self._last_zoom)

    # --- State updaters ---

    def set_layers(self, layers: Iterable[LayerConfig]) -> None:
        self._layers = _unique_layers(layers)
        self._emit()

    def add_layer(self, layer: LayerConfig) -> None:
        if self._find_layer(layer.id) is not None:
            raise ValueError(f"Duplicate layer id: {layer.id!r}")
        self._layers.append(layer)
        self._emit()
        if layer.visible:
            self._regenerate()

    def update_layer(self, layer_id: str, updates: Mapping[str, Any]) -> None:
        old = self._find_layer(layer_id)
        if old is None:
            return

        new = merge_layer(old, updates)
        self._layers = [new if layer.id == layer_id else layer for layer in self._layers]
        self._emit()

        if not self._has_viewport():
            return

        changed = changed_fields(old, new)
        newly_visible = new.visible and not old.visible
        geometry_changed = bool(changed & GEOMETRY_FIELDS)

        if newly_visible or (geometry_changed and new.visible):
            if geometry_changed:
                self._layer_voxels.pop(layer_id, None)
            self._regenerate()

    def remove_layer(self, layer_id: str) -> None:
        if self._find_layer(layer_id) is None:
            return
        self._layers = [layer for layer in self._layers if layer.id != layer_id]
        self._layer_voxels.pop(layer_id, None)
        self._emit()

    def reorder_layer(self, from_index: int, to_index: int) -> None:
        count = len(self._layers)
        if not (0 <= from_index < count) or not (0 <= to_index < count):
            return
        moved = self._layers.pop(from_index)
        self._layers.insert(to_index, moved)
        self._emit()

    def set_compare_mode(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if self._is_compare_mode == enabled:
            return
        self._is_compare_mode = enabled
        self._emit()
        if enabled:
            self._regenerate()

    def set_base_layer_id(self, layer_id: str) -> None:
        if self._base_layer_id == layer_id:
            return
        self._base_layer_id = layer_id
        self._emit()
        if self._is_compare_mode:
            self._regenerate()

    def set_target_layer_id(self, layer_id: str) -> None:
        if self._target_layer_id == layer_id:
            return
        self._target_layer_id = layer_id
        self._emit()
        if self._is_compare_mode:
            self._regenerate()

    def set_resolution_offset(self, offset: int) -> None:
        offset = int(offset)
        if self._resolution_offset == offset:
            return
        self._resolution_offset = offset
        self._emit()
        self._regenerate()

    # --- Generation ---

    def _layers_to_generate(self) -> list[LayerConfig]:
        return [
            layer
            for layer in self._layers
            if layer.visible
            or (self._is_compare_mode and layer.id == self._base_layer_id)
        ]

    def generate_voxels(
        self, bounds: GeoBounds, viewport_zoom: float
    ) -> Mapping[str, tuple[VoxelBounds, ...]]:
        self._last_bounds = bounds
        self._last_zoom = float(viewport_zoom)

        target_z = target_z_for(
            viewport_zoom,
            self._resolution_offset,
            min_z=self._config.min_target_z,
            max_z=self._config.max_target_z,
        )
        self._current_z = target_z
        self._generation_seq += 1
        seq = self._generation_seq

        layers = self._layers_to_generate()
        logger.info(
            "viewer_generation_started",
            extra={
                "generation": seq,
                "viewport_zoom": float(viewport_zoom),
                "target_z": target_z,
                "layers": [layer.id for layer in layers],
            },
        )

        results = self._run_layers(layers, bounds, target_z, float(viewport_zoom))

        if seq != self._generation_seq:
            logger.info(
                "voxel_generation_stale",
                extra={"generation": seq, "latest_generation": self._generation_seq},
            )
            return self.layer_voxels()

        self._layer_voxels = {
            layer_id: tuple(result.voxels) for layer_id, result in results.items()
        }
        self._emit()
        return self.layer_voxels()

    def _run_layers(
        self,
        layers: Sequence[LayerConfig],
        bounds: GeoBounds,
        target_z: int,
        viewport_zoom: float,
    ) -> dict[str, GenerationResult]:
        if not layers:
            return {}

        def run(layer: LayerConfig) -> GenerationResult:
            return self._generator.generate(
                bounds,
                target_z=target_z,
                viewport_zoom=viewport_zoom,
                url_template=layer.source_url,
                aggregation=layer.elevation_aggregation,
                dem_format=layer.dem_format,
            )

        owns_executor = self._executor is None
        executor = self._executor or ThreadPoolExecutor(max_workers=len(layers))
        try:
            futures: dict[str, Future[GenerationResult]] = {
                layer.id: executor.submit(run, layer) for layer in layers
            }
            return {layer_id: future.result() for layer_id, future in futures.items()}
        finally:
            if owns_executor:
                executor.shutdown(wait=True)

    # --- Display composition ---

    def _base_column_map(self) -> Optional[dict[str, int]]:
        if not self._is_compare_mode or not self._base_layer_id:
            return None
        base_voxels = self._layer_voxels.get(self._base_layer_id)
        if base_voxels is None:
            return None
        return build_base_column_map(base_voxels)

    def render_layers(self) -> list[RenderLayer]:
        base_columns = self._base_column_map()
        rendered: list[RenderLayer] = []

        for layer in self._layers:
            voxels = self._layer_voxels.get(layer.id)
            if not layer.visible or voxels is None:
                continue

            if self._is_compare_mode:
                if layer.id != self._target_layer_id or base_columns is None:
                    continue
                colors = [
                    diff_color(_column_diff(voxel, base_columns)) for voxel in voxels
                ]
                rendered.append(
                    RenderLayer(
                        layer_id=layer.id,
                        voxels=voxels,
                        opacity=COMPARE_OPACITY,
                        colors=tuple(colors),
                    )
                )
                continue

            if layer.color_mode == "elevation":
                colors = [elevation_color(voxel.center.alt) for voxel in voxels]
            else:
                colors = [tuple(layer.color)] * len(voxels)
            rendered.append(
                RenderLayer(
                    layer_id=layer.id,
                    voxels=voxels,
                    opacity=layer.opacity,
                    colors=tuple(colors),
                )
            )
        return rendered

    def inspect_voxel(self, voxel: VoxelBounds) -> VoxelInspection:
        base_columns = self._base_column_map()
        diff = _column_diff(voxel, base_columns) if base_columns is not None else None
        return VoxelInspection(key=voxel.key, altitude=voxel.center.alt, diff=diff)


def _unique_layers(layers: Iterable[LayerConfig]) -> list[LayerConfig]:
    result: list[LayerConfig] = []
    seen: set[str] = set()
    for layer in layers:
        if layer.id in seen:
            raise ValueError(f"Duplicate layer id: {layer.id!r}")
        seen.add(layer.id)
        result.append(layer)
    return result


def _column_diff(voxel: VoxelBounds, base_columns: Mapping[str, int]) -> Optional[int]:
    sid = voxel.spatial_id
    base_f = base_columns.get(sid.column_key())
    if base_f is None:
        return None
    return sid.f - base_f
