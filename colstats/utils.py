from __future__ import annotations

import dataclasses
import datetime as _dt
import hashlib
import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


# -------------------------
# Path utilities
# -------------------------
def normalize_abs_posix(path: str | Path) -> str:
    """
    Return an absolute POSIX-style path string for the given input.
    """
    return Path(path).resolve().as_posix()


# -------------------------
# Hashing utilities
# -------------------------
def canonical_json_dumps(payload: dict[str, Any]) -> str:
    """
    Deterministic JSON string for hashing: compact separators, sorted keys, no ASCII escaping.
    """
    return json.dumps(
        payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True
    )


def canonical_json_hash(payload: dict[str, Any]) -> tuple[str, str]:
    """
    Return (short_hash8, full_hash_hex) computed over canonical JSON bytes (UTF-8).
    """
    h = hashlib.sha256(canonical_json_dumps(payload).encode("utf-8")).hexdigest()
    return h[:8], h


# -------------------------
# Manifest helpers
# -------------------------
def to_jsonable(obj: Any) -> Any:
    """
    Recursively convert parameter objects into JSON primitives.

    Paths become normalized POSIX strings, enums their .name, dataclasses dicts,
    tuples/lists/sets lists, and numpy scalars plain Python numbers.
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, Path):
        return normalize_abs_posix(obj)
    if isinstance(obj, _dt.datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.name
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [to_jsonable(x) for x in obj]
    if hasattr(obj, "item"):
        # numpy scalar
        return obj.item()
    return str(obj)


def build_effective_parameters(extract: Any, plot: Any) -> dict[str, Any]:
    """
    Mapping shaped as {"extract": {...}, "plot": {...}} built from the parameter dataclasses.
    """
    return {"extract": to_jsonable(extract), "plot": to_jsonable(plot)}


def write_manifest(path: str | Path, manifest: Dict[str, Any]) -> None:
    """
    Write manifest JSON with UTF-8 encoding and stable formatting (indent=2 for readability).
    """
    Path(path).write_text(
        json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8"
    )


def utc_timestamp_seconds() -> str:
    """
    ISO-8601 UTC timestamp with seconds precision and Z suffix.
    """
    return (
        _dt.datetime.now(_dt.timezone.utc)
        .replace(tzinfo=None)
        .isoformat(timespec="seconds")
        + "Z"
    )


def ensure_run_dir(root: Path | str = "output") -> Path:
    """
    Ensure and return a per-run directory `root`/<YYYYmmddTHHMMSS>.
    """
    run_ts = time.strftime("%Y%m%dT%H%M%S", time.localtime())
    run_dir = Path(root) / run_ts
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured run_dir=%s", str(run_dir))
    return run_dir
