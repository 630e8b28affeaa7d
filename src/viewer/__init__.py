"""Layer/compare state for the voxel viewer."""

from .colors import build_base_column_map
from .colors import diff_color
from .colors import diff_legend
from .colors import elevation_color
from .colors import elevation_legend
from .controller import RenderLayer
from .controller import Subscription
from .controller import ViewerController
from .controller import VoxelInspection
from .layers import LayerConfig
from .layers import ViewerCoreState

__all__ = [
    "LayerConfig",
    "RenderLayer",
    "Subscription",
    "ViewerController",
    "ViewerCoreState",
    "VoxelInspection",
    "build_base_column_map",
    "diff_color",
    "diff_legend",
    "elevation_color",
    "elevation_legend",
]
