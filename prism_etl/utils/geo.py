# prism_etl/utils/geo.py
from pathlib import Path

import geopandas as gpd

from ..errors import ConfigurationError

# Study area extent is scaled by this factor about its center before cropping,
# so pixels and vertices sitting on the polygon's extent are not clipped.
MARGIN_FACTOR = 1.05


def find_primary_shapefile(shapefile_dir) -> Path:
    """
    Return the single .shp file in ``shapefile_dir``. The other files in the
    directory (.shx, .dbf, .prj, ...) are its required companions.
    """
    shapefile_dir = Path(shapefile_dir)
    if not shapefile_dir.is_dir():
        raise ConfigurationError(f"Shapefile directory not found: {shapefile_dir}")
    shps = sorted(p for p in shapefile_dir.iterdir() if p.suffix.lower() == ".shp")
    if len(shps) != 1:
        raise ConfigurationError(
            f"{shapefile_dir} must contain exactly one .shp file, found {len(shps)}"
        )
    return shps[0]


def load_study_area(shapefile_dir, target_crs) -> gpd.GeoDataFrame:
    """Load the study area polygon(s) and reproject to ``target_crs``."""
    shp = find_primary_shapefile(shapefile_dir)
    area = gpd.read_file(shp)
    if area.empty:
        raise ConfigurationError(f"{shp} contains no features")
    if area.crs is None:
        raise ConfigurationError(f"{shp} has no CRS (missing .prj?)")
    return area.to_crs(target_crs)


def scale_bounds(bounds, factor=MARGIN_FACTOR):
    """Scale (minx, miny, maxx, maxy) about its center by ``factor``."""
    minx, miny, maxx, maxy = (float(b) for b in bounds)
    cx, cy = (minx + maxx) / 2.0, (miny + maxy) / 2.0
    half_w = (maxx - minx) / 2.0 * factor
    half_h = (maxy - miny) / 2.0 * factor
    return (cx - half_w, cy - half_h, cx + half_w, cy + half_h)


def padded_bounds(study_area: gpd.GeoDataFrame, factor=MARGIN_FACTOR):
    """Crop box for every raster: the study area extent plus margin."""
    return scale_bounds(study_area.total_bounds, factor)
