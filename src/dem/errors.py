from __future__ import annotations


class DemError(RuntimeError):
    pass


class TileFetchError(DemError):
    pass


class TileDecodeError(DemError):
    pass


class UnsupportedDemFormatError(DemError, ValueError):
    pass
