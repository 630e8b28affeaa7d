"""DEM tiles -> spatial ID voxel sets."""

from .config import VoxelizerConfig
from .config import get_voxelizer_config
from .config import load_voxelizer_config
from .generator import AggregationMode
from .generator import GenerationResult
from .generator import GeoBounds
from .generator import VoxelGenerator
from .generator import aggregate_blocks
from .generator import target_z_for
from .generator import voxels_for_tile

__all__ = [
    "AggregationMode",
    "GenerationResult",
    "GeoBounds",
    "VoxelGenerator",
    "VoxelizerConfig",
    "aggregate_blocks",
    "get_voxelizer_config",
    "load_voxelizer_config",
    "target_z_for",
    "voxels_for_tile",
]
