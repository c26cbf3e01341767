# prism_etl/utils/dataset_files.py
"""Classification of the files in a PRISM dataset folder, and disk usage."""
import os
from enum import Enum
from pathlib import Path
from typing import Dict, List


class EntryKind(Enum):
    PRIMARY_RASTER = "primary_raster"   # the .bil grid
    RASTER_HEADER = "raster_header"     # rewritten by the encoder with the cropped grid
    SIDECAR = "sidecar"                 # metadata that travels unchanged
    UNKNOWN = "unknown"


RASTER_SUFFIXES = (".bil",)
HEADER_SUFFIXES = (".hdr", ".prj", ".aux.xml")
SIDECAR_SUFFIXES = (".info.txt", ".txt", ".stx", ".xml", ".csv")


def classify_entry(name: str) -> EntryKind:
    """Tag a file name found in a PRISM dataset folder."""
    lower = name.lower()
    # .aux.xml before .xml: both end in .xml
    if lower.endswith(HEADER_SUFFIXES):
        return EntryKind.RASTER_HEADER
    if lower.endswith(RASTER_SUFFIXES):
        return EntryKind.PRIMARY_RASTER
    if lower.endswith(SIDECAR_SUFFIXES):
        return EntryKind.SIDECAR
    return EntryKind.UNKNOWN


def classify_directory(directory) -> Dict[EntryKind, List[Path]]:
    """Group the files of ``directory`` by kind, sorted by name."""
    groups = {kind: [] for kind in EntryKind}
    for entry in sorted(Path(directory).iterdir()):
        if entry.is_file():
            groups[classify_entry(entry.name)].append(entry)
    return groups


def dir_size(path, recursive=True) -> int:
    """Total size in bytes of the files under ``path`` (0 if it does not exist)."""
    path = Path(path)
    if not path.exists():
        return 0
    if recursive:
        files = (Path(root) / f for root, _, names in os.walk(path) for f in names)
    else:
        files = path.iterdir()
    return sum(f.stat().st_size for f in files if f.is_file() and not f.is_symlink())


def to_mb(n_bytes) -> float:
    return n_bytes / 10**6
