from __future__ import annotations
from .schemas import Config
from pathlib import Path
import json

from pydantic import ValidationError

from pxwriter.errors import ConfigurationError

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # py<=310

def parse_config(text: str, source: str = "<string>") -> Config:
    """Parse and validate TOML text; any failure surfaces as ConfigurationError."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Malformed TOML in {source}: {exc}") from exc
    try:
        return Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {source}:\n{exc}") from exc

def load_config(path: str | Path) -> Config:
    p = Path(path)
    return parse_config(p.read_text(), source=str(p))

def snapshot_config_toml(path: str | Path) -> str:
    """Return the raw TOML text for embedding in HDF5 metadata."""
    return Path(path).read_text()

def json_dumps(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
