# tests/test_raster_tools.py
"""Tests for in-memory reprojection and cropping, and .bil round trips."""
import warnings

import numpy as np
import pytest
import geopandas as gpd
from rasterio.crs import CRS
from shapely.geometry import box

from prism_etl.utils.geo import padded_bounds, scale_bounds
from prism_etl.utils.raster_tools import (
    crop_raster,
    read_raster,
    reproject_raster,
    write_raster,
)

from conftest import NAD83, NODATA, make_raster


def contains(outer, inner, tol=1e-9):
    return (outer[0] <= inner[0] + tol and outer[1] <= inner[1] + tol
            and outer[2] >= inner[2] - tol and outer[3] >= inner[3] - tol)


def test_scale_bounds_about_center():
    assert scale_bounds((0, 0, 10, 20), 1.05) == pytest.approx((-0.25, -0.5, 10.25, 20.5))
    assert scale_bounds((-115, 30, -105, 40)) == pytest.approx((-115.25, 29.75, -104.75, 40.25))


def test_crop_exact_for_aligned_box():
    """A grid-aligned box inside the raster is cropped exactly."""
    raster = make_raster(west=-125.0, north=45.0, res=0.25, shape=(80, 120))
    area = gpd.GeoDataFrame(geometry=[box(-115, 30, -105, 40)], crs=NAD83)
    crop_box = padded_bounds(area)

    cropped = crop_raster(raster, crop_box)

    assert cropped.bounds == pytest.approx((-115.25, 29.75, -104.75, 40.25))
    assert (cropped.height, cropped.width) == (42, 42)
    assert cropped.crs == raster.crs
    assert cropped.nodata == NODATA
    # pixels are the same values, just windowed
    assert cropped.data[0, 0, 0] == raster.data[0, 19, 39]


def test_crop_is_intersection_with_raster_extent():
    raster = make_raster(west=-110.0, north=45.0, res=0.25, shape=(80, 60))  # -110..-95
    cropped = crop_raster(raster, (-115.25, 29.75, -104.75, 40.25))
    assert cropped.bounds == pytest.approx((-110.0, 29.75, -104.75, 40.25))


def test_crop_snaps_outward_to_cover_box():
    raster = make_raster()
    crop_box = (-112.12, 33.03, -111.41, 34.07)
    cropped = crop_raster(raster, crop_box)
    assert contains(cropped.bounds, crop_box)
    # never more than one pixel of slack on each side
    assert cropped.bounds[0] > crop_box[0] - 0.05
    assert cropped.bounds[2] < crop_box[2] + 0.05


def test_crop_outside_raster_raises():
    with pytest.raises(ValueError, match="does not overlap"):
        crop_raster(make_raster(), (0, 0, 1, 1))


def test_crop_transform_offset_without_deprecation_warning():
    raster = make_raster()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cropped = crop_raster(raster, (-112.0, 33.0, -111.0, 34.0))
    assert not [w for w in caught if w.filename.endswith("raster_tools.py")]
    # window starts 60 columns and 120 rows into the grid
    assert cropped.transform.c == pytest.approx(-112.0)
    assert cropped.transform.f == pytest.approx(34.0)
    assert cropped.transform.a == pytest.approx(raster.transform.a)


def test_crop_does_not_modify_input():
    raster = make_raster()
    original = raster.data.copy()
    cropped = crop_raster(raster, (-112, 33, -111, 34))
    cropped.data[:] = 0
    assert np.array_equal(raster.data, original)


def test_reproject_same_crs_is_noop():
    raster = make_raster()
    assert reproject_raster(raster, NAD83) is raster


def test_reproject_then_crop_contains_padded_study_area():
    raster = make_raster()
    area = gpd.GeoDataFrame(geometry=[box(-112.5, 33.0, -111.5, 34.0)], crs=NAD83).to_crs("EPSG:2223")
    crop_box = padded_bounds(area)

    projected = reproject_raster(raster, "EPSG:2223")
    cropped = crop_raster(projected, crop_box)

    assert projected.crs == CRS.from_epsg(2223)
    assert contains(cropped.bounds, crop_box)
    assert cropped.width < projected.width and cropped.height < projected.height
    assert np.any(cropped.data != NODATA)


def test_write_and_read_bil(tmp_path):
    raster = make_raster()
    out = write_raster(raster, tmp_path / "PRISM_ppt_stable_4kmM3_202001_bil.bil")

    assert out.exists()
    assert out.with_suffix(".hdr").exists()
    assert not (tmp_path / "PRISM_ppt_stable_4kmM3_202001_bil.bil.aux.xml").exists()

    back = read_raster(out)
    assert back.bounds == pytest.approx(raster.bounds)
    assert back.nodata == NODATA
    assert np.array_equal(back.data, raster.data)


def test_write_overwrites_existing(tmp_path):
    path = tmp_path / "x_bil.bil"
    write_raster(make_raster(), path)
    small = crop_raster(make_raster(), (-112, 33, -111, 34))
    write_raster(small, path)
    assert read_raster(path).data.shape == small.data.shape
