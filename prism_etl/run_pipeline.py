# prism_etl/run_pipeline.py
"""
Download PRISM data, crop it to the study area and report disk savings.

Usage:
    python -m prism_etl.run_pipeline --config config/prism_config.yaml
    python -m prism_etl.run_pipeline --resolution normal --variables ppt tmean

Configuration problems (including a missing or ambiguous shapefile) stop the
run before anything is downloaded. Download failures are per variable and
crop/write failures per dataset folder; both are reported and the run goes on.
"""
import argparse
import sys
import time
from dataclasses import dataclass
from typing import Optional

from .config import PipelineConfig, load_config
from .crop_datasets import CropReport, crop_all
from .errors import ConfigurationError
from .fetch_prism import FetchReport, fetch_all
from .utils.dataset_files import dir_size, to_mb
from .utils.geo import load_study_area, padded_bounds
from .utils.prism_api import PrismClient


@dataclass
class PipelineReport:
    fetch: Optional[FetchReport] = None
    crop: Optional[CropReport] = None
    raw_bytes: int = 0
    output_bytes: int = 0

    @property
    def saved_bytes(self):
        return self.raw_bytes - self.output_bytes

    @property
    def ok(self):
        fetch_ok = self.fetch is None or self.fetch.ok
        crop_ok = self.crop is None or not self.crop.failed
        return fetch_ok and crop_ok


def run_pipeline(config: PipelineConfig, client: Optional[PrismClient] = None,
                 skip_download=False, skip_crop=False) -> PipelineReport:
    report = PipelineReport()

    crop_box = None
    if not skip_crop:
        # before any download: a bad shapefile is a configuration error
        study_area = load_study_area(config.shapefile_dir, config.target_crs)
        crop_box = padded_bounds(study_area)

    if not skip_download:
        print(f"Downloading {config.temporal_resolution} PRISM data "
              f"({', '.join(config.variables)}) into {config.data_dir}")
        start = time.perf_counter()
        report.fetch = fetch_all(config, client=client)
        print(f"Download finished in {time.perf_counter() - start:.1f}s")

    report.raw_bytes = dir_size(config.data_dir)
    print(f"Data folder size on disk = {to_mb(report.raw_bytes)} MB")

    if not skip_crop:
        print(f"Crop box ({config.target_crs}): {tuple(round(v, 3) for v in crop_box)}")
        start = time.perf_counter()
        report.crop = crop_all(config.data_dir, config.output_dir, crop_box,
                               config.target_crs, retain_raw=config.retain_raw_data)
        print(f"Cropping finished in {time.perf_counter() - start:.1f}s")

        report.output_bytes = dir_size(config.output_dir)
        print(f"Output folder size on disk = {to_mb(report.output_bytes)} MB")
        print(f"Space saved on disk by cropping files = {to_mb(report.saved_bytes)} MB")

    print_failures(report)
    return report


def print_failures(report: PipelineReport):
    if report.fetch is not None:
        for var, err in report.fetch.failed.items():
            print(f"FAILED download {var}: {err}")
    if report.crop is not None:
        for result in report.crop.failed:
            print(f"FAILED dataset {result.name}: {result.error}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Bulk download PRISM data and crop it to a study area")
    parser.add_argument("--config", default=None, help="Path to YAML config (default config/prism_config.yaml)")
    parser.add_argument("--start-date", default=None, help="YYYY-MM-DD, YYYY-MM or YYYY")
    parser.add_argument("--end-date", default=None, help="YYYY-MM-DD, YYYY-MM or YYYY (default today)")
    parser.add_argument("--resolution", default=None, help="daily, monthly, annual or normal")
    parser.add_argument("--variables", nargs="+", default=None, help="PRISM variables, e.g. ppt tmean")
    parser.add_argument("--months", nargs="+", type=int, default=None, help="Months 1-12")
    parser.add_argument("--retain-raw", action=argparse.BooleanOptionalAction, default=None,
                        help="Keep (or, with --no-retain-raw, delete) the full-extent raw data")
    parser.add_argument("--data-dir", default=None)
    parser.add_argument("--output-dir", default=None)
    parser.add_argument("--shapefile-dir", default=None)
    parser.add_argument("--target-crs", default=None, help="e.g. EPSG:2223")
    parser.add_argument("--skip-download", action="store_true")
    parser.add_argument("--skip-crop", action="store_true")
    return parser.parse_args(argv)


def overrides_from_args(args) -> dict:
    return {
        "startDate": args.start_date,
        "endDate": args.end_date,
        "temporalResolution": args.resolution,
        "variables": args.variables,
        "months": args.months,
        "retainRawData": args.retain_raw,
        "dataDir": args.data_dir,
        "outputDir": args.output_dir,
        "shapefileDir": args.shapefile_dir,
        "targetCrs": args.target_crs,
    }


def main(argv=None):
    args = parse_args(argv)
    try:
        config = load_config(args.config, overrides=overrides_from_args(args))
        report = run_pipeline(config, skip_download=args.skip_download, skip_crop=args.skip_crop)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
