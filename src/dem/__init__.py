"""DEM tile access and elevation pixel codecs."""

from .codec import DemFormat
from .codec import SUPPORTED_DEM_FORMATS
from .codec import decode_gsi
from .codec import decode_gsi_array
from .codec import decode_terrain_rgb
from .codec import decode_terrain_rgb_array
from .codec import decoder_for_format
from .codec import encode_terrain_rgb
from .codec import encode_terrain_rgb_array
from .errors import DemError
from .errors import TileDecodeError
from .errors import TileFetchError
from .errors import UnsupportedDemFormatError
from .raster import AIST_DEM_URL_TEMPLATE
from .raster import GSI_DEM_URL_TEMPLATE
from .raster import TileRasterClient
from .raster import format_tile_url
from .terrain_rgb import TerrainRgbAdapter

__all__ = [
    "AIST_DEM_URL_TEMPLATE",
    "DemError",
    "DemFormat",
    "GSI_DEM_URL_TEMPLATE",
    "SUPPORTED_DEM_FORMATS",
    "TerrainRgbAdapter",
    "TileDecodeError",
    "TileFetchError",
    "TileRasterClient",
    "UnsupportedDemFormatError",
    "decode_gsi",
    "decode_gsi_array",
    "decode_terrain_rgb",
    "decode_terrain_rgb_array",
    "decoder_for_format",
    "encode_terrain_rgb",
    "encode_terrain_rgb_array",
    "format_tile_url",
]
