# prism_etl/crop_datasets.py
"""
Crop every downloaded PRISM dataset to the study area.

For each raw dataset folder under the data directory: load its single .bil
raster, reproject it to the target CRS, crop it to the padded study area box,
write it as .bil into ``<output_dir>/<raster stem>/`` and copy the metadata
sidecars next to it. The raw folder is deleted afterwards unless raw data is
retained, and only once everything for that folder was written.

PRISM zip archives dropped into the data directory by hand (e.g. the solar
radiation normals, which the web service does not serve) are unpacked into a
folder named after the archive first and then cropped like the rest.
"""
import argparse
import shutil
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from rasterio.errors import RasterioError

from .config import PipelineConfig, load_config
from .errors import MalformedDataset, PrismPipelineError, WriteError
from .utils.dataset_files import EntryKind, classify_directory
from .utils.geo import load_study_area, padded_bounds
from .utils.prism_api import PART_SUFFIX, extract_archive
from .utils.raster_tools import crop_raster, read_raster, reproject_raster, write_raster


@dataclass
class DatasetResult:
    name: str
    output_dir: Optional[Path] = None
    raster_path: Optional[Path] = None
    copied: List[str] = field(default_factory=list)
    raw_deleted: bool = False
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


@dataclass
class CropReport:
    crop_box: tuple = ()
    results: List[DatasetResult] = field(default_factory=list)

    @property
    def processed(self):
        return [r for r in self.results if r.ok]

    @property
    def failed(self):
        return [r for r in self.results if not r.ok]


def list_raw_dirs(data_dir) -> List[Path]:
    """Dataset folders under ``data_dir``, skipping unfinished extractions."""
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        return []
    return sorted(
        p for p in data_dir.iterdir()
        if p.is_dir() and not p.name.endswith(PART_SUFFIX)
    )


def unpack_archives(data_dir) -> List[DatasetResult]:
    """
    Extract every ``*.zip`` in ``data_dir`` into ``<zip stem>/`` and remove the zip.

    Returns a failed result per archive that could not be unpacked; those
    archives are left in place.
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        return []
    failures = []
    for zip_path in sorted(p for p in data_dir.glob("*.zip") if p.is_file()):
        try:
            extract_archive(zipfile.ZipFile(zip_path), data_dir, zip_path.stem)
            zip_path.unlink()
        except (OSError, zipfile.BadZipFile) as exc:
            print(f"  Failed to unpack {zip_path.name}: {exc} (archive kept)")
            failures.append(DatasetResult(name=zip_path.name, error=f"could not unpack archive: {exc}"))
        else:
            print(f"Unpacked {zip_path.name}")
    return failures


def find_primary_raster(groups, directory) -> Path:
    rasters = groups[EntryKind.PRIMARY_RASTER]
    if len(rasters) != 1:
        raise MalformedDataset(directory, len(rasters))
    return rasters[0]


def materialize_dataset(raw_dir, output_root, crop_box, target_crs, retain_raw=False) -> DatasetResult:
    """
    Crop one raw dataset folder and write its output folder.

    Args:
        raw_dir: PRISM dataset folder holding one .bil and its metadata
        output_root: root of the cropped output tree
        crop_box: (minx, miny, maxx, maxy) in ``target_crs``
        target_crs: CRS the cropped raster is written in
        retain_raw: keep ``raw_dir`` after a successful write

    Raises:
        MalformedDataset: zero or several .bil files in ``raw_dir``
        WriteError: the raster, a sidecar or the raw deletion failed
    """
    raw_dir = Path(raw_dir)
    groups = classify_directory(raw_dir)
    primary = find_primary_raster(groups, raw_dir)

    raster = reproject_raster(read_raster(primary), target_crs)
    cropped = crop_raster(raster, crop_box)

    name = primary.stem
    result = DatasetResult(name=name, output_dir=Path(output_root) / name)
    try:
        result.output_dir.mkdir(parents=True, exist_ok=True)
        result.raster_path = write_raster(cropped, result.output_dir / f"{name}.bil")
    except (OSError, RasterioError) as exc:
        raise WriteError(f"{raw_dir.name}: could not write cropped raster: {exc}",
                         directory=raw_dir) from exc

    # header companions (.hdr, .prj) were regenerated by the encoder
    for f in groups[EntryKind.SIDECAR] + groups[EntryKind.UNKNOWN]:
        try:
            shutil.copy2(f, result.output_dir / f.name)
        except OSError as exc:
            raise WriteError(f"{raw_dir.name}: could not copy {f.name}: {exc}",
                             directory=raw_dir) from exc
        result.copied.append(f.name)

    if not retain_raw:
        # a partly deleted folder must never look like a dataset
        trash = raw_dir.with_name(raw_dir.name + PART_SUFFIX)
        try:
            if trash.exists():
                shutil.rmtree(trash)
            raw_dir.rename(trash)
            shutil.rmtree(trash)
        except OSError as exc:
            raise WriteError(f"{raw_dir.name}: output written but raw data not deleted: {exc}",
                             directory=raw_dir) from exc
        result.raw_deleted = True
    return result


def crop_all(data_dir, output_dir, crop_box, target_crs, retain_raw=False) -> CropReport:
    """Process every raw dataset folder; failures are reported and skipped."""
    report = CropReport(crop_box=tuple(crop_box))
    report.results.extend(unpack_archives(data_dir))
    dirs = list_raw_dirs(data_dir)
    for i, raw_dir in enumerate(dirs, start=1):
        print(f"Processing file #{i} of {len(dirs)}.")
        try:
            result = materialize_dataset(raw_dir, output_dir, crop_box, target_crs,
                                         retain_raw=retain_raw)
        except (PrismPipelineError, RasterioError, OSError, ValueError) as exc:
            result = DatasetResult(name=raw_dir.name, error=str(exc))
            print(f"  Failed {raw_dir.name}: {exc} (raw data kept)")
        report.results.append(result)
    return report


def crop_from_config(config: PipelineConfig) -> CropReport:
    study_area = load_study_area(config.shapefile_dir, config.target_crs)
    crop_box = padded_bounds(study_area)
    print(f"Crop box ({config.target_crs}): {tuple(round(v, 3) for v in crop_box)}")
    return crop_all(config.data_dir, config.output_dir, crop_box, config.target_crs,
                    retain_raw=config.retain_raw_data)


def main():
    """Crop already downloaded PRISM data (no download)."""
    parser = argparse.ArgumentParser(description="Crop PRISM rasters to the study area")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    args = parser.parse_args()
    config = load_config(args.config)
    start = time.perf_counter()
    report = crop_from_config(config)
    print(f"Cropped {len(report.processed)} of {len(report.results)} datasets "
          f"in {time.perf_counter() - start:.1f}s")
    if report.failed:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
