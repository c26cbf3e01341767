# prism_etl/utils/prism_api.py
"""
Client for the PRISM web service (services.nacse.org).

Every request returns one zip archive holding a single ``.bil`` raster plus
its header and metadata files. The archive is unpacked into a folder named
after the archive itself (PRISM's naming convention, e.g.
``PRISM_ppt_stable_4kmM3_202001_bil``) directly under the download directory.
A request is skipped when a folder for the same variable and period already
exists, so re-running a bulk download only fetches what is missing.
"""
import io
import re
import shutil
import time
import zipfile
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import requests

from ..errors import FetchError
from .api_clients import SimpleRequestClient

PRISM_BASE_URL = "https://services.nacse.org/prism/data/public"
GRID_RESOLUTION = "4km"  # the free time-series grids are 4km only
NORMALS_ANNUAL_CODE = "14"
PART_SUFFIX = ".part"

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


@dataclass(frozen=True)
class PrismRequest:
    """One archive on the PRISM service."""
    variable: str
    url_path: str      # path below PRISM_BASE_URL, e.g. "4km/ppt/202001"
    token: str         # period as it appears in folder names: 20200101, 202001, 2020, 01, annual
    resolution: str = GRID_RESOLUTION
    normal: bool = False

    @property
    def fallback_name(self):
        if self.normal:
            return f"PRISM_{self.variable}_30yr_normal_{self.resolution}_{self.token}_bil"
        return f"PRISM_{self.variable}_{self.resolution}_{self.token}_bil"

    @property
    def folder_pattern(self):
        var = re.escape(self.variable)
        res = re.escape(self.resolution)
        token = re.escape(self.token)
        if self.normal:
            return re.compile(rf"PRISM_{var}_30yr_normal_{res}\w*_{token}_bil")
        return re.compile(rf"PRISM_{var}_(?:\w+_)?{res}\w*_{token}_bil")

    def matches(self, folder_name):
        return self.folder_pattern.fullmatch(folder_name) is not None


def daily_requests(variable, start: date, end: date) -> List[PrismRequest]:
    out = []
    day = start
    while day <= end:
        token = day.strftime("%Y%m%d")
        out.append(PrismRequest(variable, f"{GRID_RESOLUTION}/{variable}/{token}", token))
        day += timedelta(days=1)
    return out


def monthly_requests(variable, years: Iterable[int], months: Iterable[int]) -> List[PrismRequest]:
    months = list(months)
    out = []
    for year in years:
        for month in months:
            token = f"{year:04d}{month:02d}"
            out.append(PrismRequest(variable, f"{GRID_RESOLUTION}/{variable}/{token}", token))
    return out


def annual_requests(variable, years: Iterable[int]) -> List[PrismRequest]:
    return [
        PrismRequest(variable, f"{GRID_RESOLUTION}/{variable}/{year:04d}", f"{year:04d}")
        for year in years
    ]


def normals_requests(variable, months: Iterable[int], resolution="800m", annual=True) -> List[PrismRequest]:
    """30-year normals: one layer per month, plus the annual summary layer."""
    out = [
        PrismRequest(variable, f"normals/{resolution}/{variable}/{m:02d}", f"{m:02d}",
                     resolution=resolution, normal=True)
        for m in months
    ]
    if annual:
        out.append(PrismRequest(variable, f"normals/{resolution}/{variable}/{NORMALS_ANNUAL_CODE}",
                                "annual", resolution=resolution, normal=True))
    return out


def archive_name(headers, request: PrismRequest) -> str:
    """Archive file name from Content-Disposition, else the request's fallback."""
    disposition = (headers or {}).get("Content-Disposition", "")
    m = _FILENAME_RE.search(disposition)
    if m:
        name = Path(m.group(1).strip()).name
        if name:
            return name
    return request.fallback_name + ".zip"


def extract_archive(archive: zipfile.ZipFile, parent, stem) -> Path:
    """
    Unpack ``archive`` into ``parent/stem`` and return that folder.

    Files land in ``<stem>.part`` first and the folder is renamed once
    extraction finished, so an interrupted run never leaves a folder that
    looks complete. An existing ``parent/stem`` is replaced.
    """
    parent = Path(parent)
    parent.mkdir(parents=True, exist_ok=True)
    target = parent / stem
    part = parent / (stem + PART_SUFFIX)
    if part.exists():
        shutil.rmtree(part)
    with archive:
        archive.extractall(part)
    if target.exists():
        shutil.rmtree(target)
    part.rename(target)
    return target


class PrismClient:
    """
    Download PRISM archives into ``download_dir``.

    ``skip_roots`` are further directories searched for existing folders
    (e.g. the cropped output root, so data that was already cropped and
    whose raw copy was deleted is not downloaded again).
    """
    def __init__(self, download_dir, http: Optional[SimpleRequestClient] = None,
                 base_url=PRISM_BASE_URL, pause=0.5, skip_roots=()):
        self.download_dir = Path(download_dir)
        self.http = http if http is not None else SimpleRequestClient()
        self.base_url = base_url.rstrip("/")
        self.pause = pause
        self.skip_roots = [Path(p) for p in skip_roots]
        self.downloads = 0

    def url_for(self, request: PrismRequest) -> str:
        return f"{self.base_url}/{request.url_path}"

    def existing_folder(self, request: PrismRequest) -> Optional[Path]:
        for root in [self.download_dir, *self.skip_roots]:
            if not root.is_dir():
                continue
            for entry in root.iterdir():
                if entry.is_dir() and request.matches(entry.name):
                    return entry
        return None

    def fetch(self, request: PrismRequest) -> Tuple[Path, bool]:
        """Make sure the archive for ``request`` is on disk.

        Returns ``(folder, downloaded)``; ``downloaded`` is False when an
        existing folder satisfied the request.
        """
        existing = self.existing_folder(request)
        if existing is not None:
            return existing, False
        return self._download(request), True

    def _download(self, request: PrismRequest) -> Path:
        if self.downloads and self.pause:
            time.sleep(self.pause)
        url = self.url_for(request)
        try:
            content, headers = self.http.download(url)
        except requests.RequestException as exc:
            raise FetchError(f"{request.variable}: download of {url} failed: {exc}",
                             variable=request.variable) from exc
        finally:
            self.downloads += 1

        name = archive_name(headers, request)
        stem = name[:-4] if name.lower().endswith(".zip") else name
        try:
            archive = zipfile.ZipFile(io.BytesIO(content))
        except zipfile.BadZipFile as exc:
            # PRISM answers quota and missing-data conditions with a text body
            preview = content[:200].decode("utf-8", errors="replace").strip()
            raise FetchError(f"{request.variable}: {url} did not return a zip archive: {preview!r}",
                             variable=request.variable) from exc

        try:
            return extract_archive(archive, self.download_dir, stem)
        except (OSError, zipfile.BadZipFile) as exc:
            raise FetchError(f"{request.variable}: could not extract {name}: {exc}",
                             variable=request.variable) from exc
