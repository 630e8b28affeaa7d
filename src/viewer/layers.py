from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from viewer.colors import RGB

ColorMode = Literal["solid", "elevation"]
ElevationAggregation = Literal["max", "avg", "min"]
LayerDemFormat = Literal["gsi", "terrain-rgb"]

# Changing any of these invalidates the layer's cached voxels.
GEOMETRY_FIELDS: frozenset[str] = frozenset(
    {"source_url", "elevation_aggregation", "dem_format"}
)


class LayerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1)
    name: str = ""
    source_url: str = Field(min_length=1)
    visible: bool = True
    color: RGB = (255, 255, 255)
    opacity: float = Field(default=1.0, ge=0.0, le=1.0)
    color_mode: ColorMode = "solid"
    elevation_aggregation: ElevationAggregation = "max"
    dem_format: LayerDemFormat = "gsi"

    @field_validator("id", "source_url")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        stripped = (value or "").strip()
        if stripped == "":
            raise ValueError("must not be empty")
        return stripped

    @field_validator("color")
    @classmethod
    def _validate_color(cls, value: RGB) -> RGB:
        if any(not (0 <= int(channel) <= 255) for channel in value):
            raise ValueError(f"color channels must be within 0..255: {value}")
        return value


def merge_layer(layer: LayerConfig, updates: Mapping[str, Any]) -> LayerConfig:
    """Apply a partial update, validating the merged config."""

    if "id" in updates and updates["id"] != layer.id:
        raise ValueError(f"Layer id is immutable: {layer.id!r}")
    payload = layer.model_dump()
    payload.update(dict(updates))
    return LayerConfig.model_validate(payload)


def changed_fields(old: LayerConfig, new: LayerConfig) -> set[str]:
    old_data = old.model_dump()
    new_data = new.model_dump()
    return {key for key, value in new_data.items() if old_data.get(key) != value}


@dataclass(frozen=True)
class ViewerCoreState:
    layers: tuple[LayerConfig, ...]
    is_compare_mode: bool
    base_layer_id: str
    target_layer_id: str
    resolution_offset: int
    current_z: int

    def layer(self, layer_id: str) -> LayerConfig | None:
        for item in self.layers:
            if item.id == layer_id:
                return item
        return None
