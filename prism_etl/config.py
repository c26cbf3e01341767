# prism_etl/config.py
"""Run configuration for the PRISM download/crop pipeline.

The operator writes a YAML file (see ``config/prism_config.yaml``) using the
option names below; CLI flags may override any of them. Everything is
validated here, before any network or disk I/O happens, and every default
(all months, first day of an incomplete date, today for a missing end date)
is resolved in this module rather than at the call sites.
"""
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

import yaml
from pyproj import CRS
from pyproj.exceptions import CRSError

from .errors import ConfigurationError

ROOT = Path(__file__).resolve().parent.parent
CONFIG_PATH = ROOT / "config" / "prism_config.yaml"

TEMPORAL_RESOLUTIONS = ("daily", "monthly", "annual", "normal")

# Variables served by the PRISM web service. The solar radiation normals
# (soltotal, solslope, solclear, soltrans) are not available through it.
PRISM_VARIABLES = ("ppt", "tmean", "tmin", "tmax", "tdmean", "vpdmin", "vpdmax")

NORMALS_RESOLUTIONS = ("800m", "4km")
ALL_MONTHS = tuple(range(1, 13))

# YAML option name -> PipelineConfig field
OPTION_NAMES = {
    "startDate": "start_date",
    "endDate": "end_date",
    "temporalResolution": "temporal_resolution",
    "variables": "variables",
    "months": "months",
    "retainRawData": "retain_raw_data",
    "dataDir": "data_dir",
    "outputDir": "output_dir",
    "shapefileDir": "shapefile_dir",
    "targetCrs": "target_crs",
    "normalsResolution": "normals_resolution",
    "requestPause": "request_pause",
    "httpRetries": "http_retries",
}

REQUIRED_OPTIONS = ("startDate", "temporalResolution", "variables")


@dataclass(frozen=True)
class PipelineConfig:
    start_date: date
    end_date: date
    temporal_resolution: str
    variables: List[str]
    months: List[int] = field(default_factory=lambda: list(ALL_MONTHS))
    retain_raw_data: bool = False
    data_dir: Path = Path("Data")
    output_dir: Path = Path("Output")
    shapefile_dir: Path = Path("Shapefile")
    target_crs: str = "EPSG:2223"
    normals_resolution: str = "800m"
    request_pause: float = 0.5
    http_retries: int = 3

    @property
    def years(self) -> List[int]:
        """Calendar years overlapping the date range.

        Sub-year ranges widen to whole years: monthly, annual and normal
        downloads are requested per year, so 2020-06-01..2021-02-01 asks for
        all of 2020 and 2021 (filtered by ``months`` where that applies).
        """
        return years_in_range(self.start_date, self.end_date)


def years_in_range(start: date, end: date) -> List[int]:
    if start > end:
        raise ConfigurationError(f"startDate {start} is after endDate {end}")
    return list(range(start.year, end.year + 1))


def resolve_date(value, option: str) -> date:
    """Parse a configured date.

    Accepts ``date``/``datetime`` objects (PyYAML parses ISO dates itself) and
    strings in ``YYYY-MM-DD``, ``YYYY-MM`` or ``YYYY`` form. An incomplete date
    resolves to the first day of the month or year.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ConfigurationError(f"{option} must be a date, got {value!r}")
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%Y-%m", "%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ConfigurationError(
        f"{option} {value!r} is not a date (expected YYYY-MM-DD, YYYY-MM or YYYY)"
    )


def resolve_variables(value) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError("variables must be a non-empty list of PRISM variable names")
    out = []
    unsupported = []
    for v in value:
        if not isinstance(v, str) or v not in PRISM_VARIABLES:
            unsupported.append(v)
        elif v not in out:
            out.append(v)
    if unsupported:
        raise ConfigurationError(
            f"Unsupported PRISM variable(s) {unsupported}; "
            f"must be drawn from {', '.join(PRISM_VARIABLES)}"
        )
    return out


def resolve_months(value) -> List[int]:
    """Validate the month filter, defaulting to all twelve months."""
    if value is None:
        return list(ALL_MONTHS)
    if isinstance(value, int) and not isinstance(value, bool):
        value = [value]
    if not isinstance(value, (list, tuple)) or not value:
        raise ConfigurationError("months must be a non-empty list of integers 1-12")
    for m in value:
        if isinstance(m, bool) or not isinstance(m, int) or not 1 <= m <= 12:
            raise ConfigurationError(f"Invalid month {m!r}; months must be integers 1-12")
    return sorted(set(value))


def resolve_crs(value) -> str:
    try:
        CRS.from_user_input(value)
    except (CRSError, TypeError) as exc:
        raise ConfigurationError(f"targetCrs {value!r} is not a valid CRS: {exc}") from exc
    return str(value)


def validate_config(options: dict, today: Optional[date] = None) -> PipelineConfig:
    """Build a PipelineConfig from a mapping of operator option names.

    Raises ConfigurationError on the first problem found.
    """
    unknown = sorted(set(options) - set(OPTION_NAMES))
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration option(s) {unknown}; recognized: {', '.join(OPTION_NAMES)}"
        )
    missing = [k for k in REQUIRED_OPTIONS if options.get(k) is None]
    if missing:
        raise ConfigurationError(f"Missing required configuration option(s): {', '.join(missing)}")

    t_res = options["temporalResolution"]
    if t_res not in TEMPORAL_RESOLUTIONS:
        raise ConfigurationError(
            f"temporalResolution must be one of {', '.join(TEMPORAL_RESOLUTIONS)}; got {t_res!r}"
        )

    start = resolve_date(options["startDate"], "startDate")
    end_value = options.get("endDate")
    end = resolve_date(end_value, "endDate") if end_value is not None else (today or date.today())
    if start > end:
        raise ConfigurationError(f"startDate {start} is after endDate {end}")

    variables = resolve_variables(options["variables"])

    months = resolve_months(options.get("months"))
    if options.get("months") is not None and t_res in ("daily", "annual"):
        warnings.warn(f"months is ignored for {t_res} downloads")

    kwargs = dict(
        start_date=start,
        end_date=end,
        temporal_resolution=t_res,
        variables=variables,
        months=months,
    )

    if options.get("retainRawData") is not None:
        retain = options["retainRawData"]
        if not isinstance(retain, bool):
            raise ConfigurationError(f"retainRawData must be true or false, got {retain!r}")
        kwargs["retain_raw_data"] = retain

    for key in ("dataDir", "outputDir", "shapefileDir"):
        if options.get(key) is not None:
            kwargs[OPTION_NAMES[key]] = Path(options[key])

    if options.get("targetCrs") is not None:
        kwargs["target_crs"] = resolve_crs(options["targetCrs"])

    if options.get("normalsResolution") is not None:
        res = options["normalsResolution"]
        if res not in NORMALS_RESOLUTIONS:
            raise ConfigurationError(
                f"normalsResolution must be one of {', '.join(NORMALS_RESOLUTIONS)}; got {res!r}"
            )
        kwargs["normals_resolution"] = res

    if options.get("requestPause") is not None:
        try:
            pause = float(options["requestPause"])
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"requestPause must be a number: {exc}") from exc
        if pause < 0:
            raise ConfigurationError("requestPause must not be negative")
        kwargs["request_pause"] = pause

    if options.get("httpRetries") is not None:
        retries = options["httpRetries"]
        if isinstance(retries, bool) or not isinstance(retries, int) or retries < 1:
            raise ConfigurationError(f"httpRetries must be a positive integer, got {retries!r}")
        kwargs["http_retries"] = retries

    return PipelineConfig(**kwargs)


def read_config_file(path=None) -> dict:
    """Read the YAML option mapping; an empty file yields an empty mapping."""
    path = Path(path) if path is not None else CONFIG_PATH
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")
    try:
        cfg = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Could not parse {path}: {exc}") from exc
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"{path} must contain a mapping of options")
    return cfg


def load_config(path=None, overrides: Optional[dict] = None, today: Optional[date] = None) -> PipelineConfig:
    """Load the YAML config at ``path`` and apply non-None CLI overrides."""
    options = read_config_file(path)
    for k, v in (overrides or {}).items():
        if v is not None:
            options[k] = v
    return validate_config(options, today=today)
