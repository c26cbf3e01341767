# tests/conftest.py
"""Shared fixtures: synthetic PRISM folders, a study area shapefile and a fake PRISM service."""
import io
import tempfile
import zipfile
from pathlib import Path

import numpy as np
import pytest
import requests
import geopandas as gpd
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box

from prism_etl.utils.raster_tools import Raster, write_raster

NAD83 = "EPSG:4269"
NODATA = -9999.0

# small stand-in for the CONUS grid around Arizona
GRID_WEST, GRID_NORTH, GRID_RES = -115.0, 40.0, 0.05
GRID_SHAPE = (200, 200)  # rows, cols -> extent -115..-105, 30..40

# study area well inside the grid
STUDY_AREA_BOUNDS = (-112.5, 33.0, -111.5, 34.0)

SIDECAR_EXTS = (".info.txt", ".stx", ".xml")
HEADER_EXTS = (".hdr", ".prj")


def make_raster(west=GRID_WEST, north=GRID_NORTH, res=GRID_RES, shape=GRID_SHAPE, crs=NAD83):
    rows, cols = shape
    data = np.arange(rows * cols, dtype="float32").reshape(1, rows, cols)
    data[0, 0, 0] = NODATA
    return Raster(data, from_origin(west, north, res, res), CRS.from_user_input(crs), NODATA)


def make_prism_folder(root, stem, raster=None, sidecars=SIDECAR_EXTS):
    """Write a PRISM-style dataset folder ``root/stem`` and return it."""
    folder = Path(root) / stem
    folder.mkdir(parents=True, exist_ok=True)
    write_raster(raster if raster is not None else make_raster(), folder / f"{stem}.bil")
    for ext in sidecars:
        (folder / f"{stem}{ext}").write_text(f"metadata {stem}{ext}\n")
    return folder


def prism_zip_bytes(stem, raster=None):
    """Zip archive as served by PRISM for ``stem``."""
    with tempfile.TemporaryDirectory() as tmpdir:
        folder = make_prism_folder(tmpdir, stem, raster=raster)
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            for f in sorted(folder.iterdir()):
                zf.write(f, arcname=f.name)
        return buf.getvalue()


def stem_for_url(url):
    """PRISM archive stem for a service URL, following PRISM's naming."""
    parts = url.rstrip("/").split("/")
    if "normals" in parts:
        res, var, code = parts[-3], parts[-2], parts[-1]
        token = "annual" if code == "14" else code
        return f"PRISM_{var}_30yr_normal_{res}M4_{token}_bil"
    var, token = parts[-2], parts[-1]
    kind = {8: "D2", 6: "M3", 4: "M3"}[len(token)]
    return f"PRISM_{var}_stable_4km{kind}_{token}_bil"


class FakeResponse:
    def __init__(self, content=b"", headers=None, status_code=200):
        self.content = content
        self.headers = headers or {}
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakePrismSession:
    """Stands in for requests.Session; serves generated PRISM archives."""

    def __init__(self, fail_for=(), text_for=()):
        self.calls = []
        self.fail_for = set(fail_for)
        self.text_for = set(text_for)

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append(url)
        if any(f in url for f in self.fail_for):
            return FakeResponse(status_code=500)
        if any(t in url for t in self.text_for):
            return FakeResponse(b"You have tried to download the file more than twice in one day.")
        stem = stem_for_url(url)
        return FakeResponse(
            prism_zip_bytes(stem),
            headers={"Content-Disposition": f'attachment; filename="{stem}.zip"'},
        )


@pytest.fixture
def fake_session():
    return FakePrismSession()


@pytest.fixture
def shapefile_dir(tmp_path):
    d = tmp_path / "Shapefile"
    d.mkdir()
    area = gpd.GeoDataFrame({"name": ["study_area"]}, geometry=[box(*STUDY_AREA_BOUNDS)], crs=NAD83)
    area.to_file(d / "study_area.shp")
    return d
