from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

SUPPORTED_SCHEMA_VERSIONS: Final[set[int]] = {1}

DEFAULT_VOXELIZER_CONFIG_NAME: Final[str] = "voxelizer.yaml"
DEFAULT_VOXELIZER_CONFIG_ENV: Final[str] = "TERRAIN_VOXELIZER_CONFIG"
DEFAULT_VOXELIZER_CONFIG_DIR_ENV: Final[str] = "TERRAIN_VOXELIZER_CONFIG_DIR"


class BackoffConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_seconds: float = Field(default=0.5, gt=0)
    factor: float = Field(default=2.0, gt=1.0)
    max_seconds: float = Field(default=10.0, gt=0)


class VoxelizerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1

    # Tile fan-out guard; larger requests are skipped, not failed.
    max_tiles: int = Field(default=400, ge=1, le=100_000)
    dem_max_zoom: int = Field(default=14, ge=0, le=25)
    tile_size: int = Field(default=256, gt=0)

    # Spatial ID resolution window for generated voxels.
    min_target_z: int = Field(default=10, ge=0, le=25)
    max_target_z: int = Field(default=22, ge=0, le=25)
    default_resolution_offset: int = Field(default=4, ge=-25, le=25)

    # Concurrency and retry policy for tile fetches.
    max_workers: int = Field(default=8, ge=1, le=128)
    max_retries: int = Field(default=0, ge=0, le=10)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    timeout_s: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _validate_config(self) -> "VoxelizerConfig":
        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(
                f"Unsupported voxelizer schema_version={self.schema_version}; "
                f"supported versions: {sorted(SUPPORTED_SCHEMA_VERSIONS)}"
            )
        if self.max_target_z < self.min_target_z:
            raise ValueError("max_target_z must be >= min_target_z")
        return self


def _absolute(path: Union[str, Path]) -> Path:
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = (Path.cwd() / candidate).resolve()
    return candidate


def _resolve_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = environ or os.environ
    explicit = environ.get(DEFAULT_VOXELIZER_CONFIG_DIR_ENV)
    if explicit:
        return _absolute(explicit)
    return Path.cwd() / "config"


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    if path is not None:
        return _absolute(path)

    explicit = os.environ.get(DEFAULT_VOXELIZER_CONFIG_ENV)
    if explicit:
        return _absolute(explicit)

    return _resolve_config_dir(os.environ) / DEFAULT_VOXELIZER_CONFIG_NAME


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to load voxelizer YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"voxelizer config must be a mapping: {source}")
    return data


def load_voxelizer_config(
    path: Optional[Union[str, Path]] = None,
) -> VoxelizerConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"voxelizer config file not found: {config_path}")

    raw_text = config_path.read_text(encoding="utf-8")
    data = dict(_parse_yaml(raw_text, source=config_path))

    try:
        return VoxelizerConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid voxelizer config ({config_path}): {exc}") from exc


@lru_cache(maxsize=8)
def _get_voxelizer_config_cached(
    config_path: str, mtime_ns: int, size: int
) -> VoxelizerConfig:
    _ = (mtime_ns, size)
    return load_voxelizer_config(config_path)


def get_voxelizer_config(
    path: Optional[Union[str, Path]] = None,
) -> VoxelizerConfig:
    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"voxelizer config file not found: {resolved}") from exc
    return _get_voxelizer_config_cached(str(resolved), stat.st_mtime_ns, stat.st_size)


get_voxelizer_config.cache_clear = _get_voxelizer_config_cached.cache_clear  # type: ignore[attr-defined]
