# prism_etl/utils/raster_tools.py
"""
In-memory raster helpers: read, reproject, crop, write.

``reproject_raster`` and ``crop_raster`` are pure: they take a Raster and
return a new one without touching disk. Only ``read_raster`` and
``write_raster`` do I/O.
"""
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds
from rasterio.warp import Resampling, calculate_default_transform, reproject
from rasterio.windows import from_bounds

# ESRI .bil with .hdr header, the format PRISM ships
BIL_DRIVER = "EHdr"

# tolerance (in pixels) when snapping a crop window to the grid
_SNAP_EPS = 1e-6


@dataclass(frozen=True)
class Raster:
    data: np.ndarray          # (bands, rows, cols)
    transform: Affine
    crs: CRS
    nodata: Optional[float] = None

    @property
    def count(self):
        return self.data.shape[0]

    @property
    def height(self):
        return self.data.shape[1]

    @property
    def width(self):
        return self.data.shape[2]

    @property
    def bounds(self):
        """(left, bottom, right, top) in CRS units."""
        return array_bounds(self.height, self.width, self.transform)


def read_raster(path) -> Raster:
    with rasterio.open(path) as src:
        if src.crs is None:
            raise ValueError(f"Source raster has no CRS: {path}")
        return Raster(src.read(), src.transform, src.crs, src.nodata)


def reproject_raster(raster: Raster, dst_crs, resampling=Resampling.bilinear) -> Raster:
    """Warp ``raster`` to ``dst_crs``; returned unchanged if already in it."""
    dst_crs = CRS.from_user_input(dst_crs)
    if raster.crs == dst_crs:
        return raster

    left, bottom, right, top = raster.bounds
    dst_transform, dst_width, dst_height = calculate_default_transform(
        raster.crs, dst_crs, raster.width, raster.height,
        left=left, bottom=bottom, right=right, top=top
    )
    fill = raster.nodata if raster.nodata is not None else 0
    dst_array = np.full((raster.count, int(dst_height), int(dst_width)), fill,
                        dtype=raster.data.dtype)

    for i in range(raster.count):
        reproject(
            source=raster.data[i],
            destination=dst_array[i],
            src_transform=raster.transform,
            src_crs=raster.crs,
            src_nodata=raster.nodata,
            dst_transform=dst_transform,
            dst_crs=dst_crs,
            dst_nodata=raster.nodata,
            resampling=resampling
        )
    return Raster(dst_array, dst_transform, dst_crs, raster.nodata)


def crop_raster(raster: Raster, bounds) -> Raster:
    """
    Crop to ``bounds`` (minx, miny, maxx, maxy) in the raster's CRS.

    The window is the intersection of the box with the raster extent, snapped
    outward to whole pixels, so the result always covers that intersection.
    """
    left, bottom, right, top = bounds
    r_left, r_bottom, r_right, r_top = raster.bounds
    i_left, i_bottom = max(left, r_left), max(bottom, r_bottom)
    i_right, i_top = min(right, r_right), min(top, r_top)
    if i_left >= i_right or i_bottom >= i_top:
        raise ValueError(
            f"Crop box {tuple(bounds)} does not overlap raster extent "
            f"{(r_left, r_bottom, r_right, r_top)}"
        )

    window = from_bounds(i_left, i_bottom, i_right, i_top, transform=raster.transform)
    col0 = max(0, math.floor(window.col_off + _SNAP_EPS))
    row0 = max(0, math.floor(window.row_off + _SNAP_EPS))
    col1 = min(raster.width, math.ceil(window.col_off + window.width - _SNAP_EPS))
    row1 = min(raster.height, math.ceil(window.row_off + window.height - _SNAP_EPS))
    col1 = max(col1, col0 + 1)
    row1 = max(row1, row0 + 1)

    data = raster.data[:, row0:row1, col0:col1].copy()
    transform = raster.transform @ Affine.translation(col0, row0)
    return Raster(data, transform, raster.crs, raster.nodata)


def dataset_files(path):
    """Files GDAL writes for an EHdr dataset at ``path``."""
    path = Path(path)
    return [path, path.with_suffix(".hdr"), path.with_suffix(".prj"),
            path.with_name(path.name + ".aux.xml")]


def write_raster(raster: Raster, path, driver=BIL_DRIVER):
    """Write ``raster`` to ``path``, replacing any existing dataset there."""
    path = Path(path)
    for f in dataset_files(path):
        if f.exists():
            f.unlink()
    # no PAM .aux.xml next to the output
    with rasterio.Env(GDAL_PAM_ENABLED="NO"):
        with rasterio.open(
            path, "w",
            driver=driver,
            height=raster.height,
            width=raster.width,
            count=raster.count,
            dtype=raster.data.dtype.name,
            crs=raster.crs,
            transform=raster.transform,
            nodata=raster.nodata,
        ) as dst:
            dst.write(raster.data)
    return path
