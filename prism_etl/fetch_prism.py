# prism_etl/fetch_prism.py
"""
Bulk download of PRISM climate rasters.

One download job per requested variable; each job expands into the PRISM
archives implied by the temporal resolution:

  daily    one archive per day in [start_date, end_date]
  monthly  one per (year, month) over the years overlapping the range
  annual   one per year overlapping the range
  normal   one 30-year normal per month plus the annual normal

A failure aborts the remaining archives of that variable only.
"""
import argparse
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .config import PipelineConfig, load_config
from .errors import ConfigurationError, FetchError
from .utils.api_clients import SimpleRequestClient
from .utils.prism_api import (
    PrismClient,
    PrismRequest,
    annual_requests,
    daily_requests,
    monthly_requests,
    normals_requests,
)


@dataclass(frozen=True)
class DownloadJob:
    variable: str
    temporal_resolution: str
    start_date: date
    end_date: date
    years: List[int]
    months: List[int]
    normals_resolution: str = "800m"

    def requests(self) -> List[PrismRequest]:
        if self.temporal_resolution == "daily":
            return daily_requests(self.variable, self.start_date, self.end_date)
        if self.temporal_resolution == "monthly":
            return monthly_requests(self.variable, self.years, self.months)
        if self.temporal_resolution == "annual":
            return annual_requests(self.variable, self.years)
        if self.temporal_resolution == "normal":
            return normals_requests(self.variable, self.months,
                                    resolution=self.normals_resolution, annual=True)
        raise ConfigurationError(f"Unknown temporal resolution {self.temporal_resolution!r}")


@dataclass
class FetchReport:
    downloaded: Dict[str, int] = field(default_factory=dict)
    skipped: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self):
        return not self.failed


def jobs_from_config(config: PipelineConfig) -> List[DownloadJob]:
    years = config.years
    return [
        DownloadJob(
            variable=var,
            temporal_resolution=config.temporal_resolution,
            start_date=config.start_date,
            end_date=config.end_date,
            years=years,
            months=list(config.months),
            normals_resolution=config.normals_resolution,
        )
        for var in config.variables
    ]


def make_client(config: PipelineConfig) -> PrismClient:
    return PrismClient(
        config.data_dir,
        http=SimpleRequestClient(retries=config.http_retries),
        pause=config.request_pause,
        skip_roots=[config.output_dir],
    )


def fetch_variable(client: PrismClient, job: DownloadJob):
    """Fetch every archive of one job. Returns ``(downloaded, skipped)`` counts."""
    downloaded = skipped = 0
    for request in job.requests():
        folder, fresh = client.fetch(request)
        if fresh:
            downloaded += 1
            print(f"  downloaded {folder.name}")
        else:
            skipped += 1
    return downloaded, skipped


def fetch_all(config: PipelineConfig, client: Optional[PrismClient] = None) -> FetchReport:
    client = client if client is not None else make_client(config)
    config.data_dir.mkdir(parents=True, exist_ok=True)
    report = FetchReport()
    for job in jobs_from_config(config):
        print(job.variable)
        start = time.perf_counter()
        try:
            downloaded, skipped = fetch_variable(client, job)
        except FetchError as exc:
            report.failed[job.variable] = str(exc)
            print(f"Fetch failed for {job.variable}: {exc}")
            continue
        report.downloaded[job.variable] = downloaded
        report.skipped[job.variable] = skipped
        print(f"  {job.variable}: {downloaded} downloaded, {skipped} already present "
              f"({time.perf_counter() - start:.1f}s)")
    return report


def main():
    """Download PRISM data only (no cropping)."""
    parser = argparse.ArgumentParser(description="Bulk download PRISM rasters")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    args = parser.parse_args()
    config = load_config(args.config)
    report = fetch_all(config)
    if not report.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
