from __future__ import annotations
from .schemas import Config
from pathlib import Path
import json
import sys

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

def _resolve(base: Path, p: str | None) -> str | None:
    if p is None:
        return None
    q = Path(p).expanduser()
    return str(q if q.is_absolute() else base / q)

def load_config(path: str | Path) -> Config:
    """
    Parse and validate a TOML config.

    Relative paths ([io] input/output, geometry.positions_path) are taken
    relative to the directory holding the config file.
    """
    p = Path(path)
    cfg = Config(**tomllib.loads(p.read_text()))
    base = p.resolve().parent
    cfg.io.input_path = _resolve(base, cfg.io.input_path)
    cfg.io.output_path = _resolve(base, cfg.io.output_path)
    cfg.geometry.positions_path = _resolve(base, cfg.geometry.positions_path)
    return cfg

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
