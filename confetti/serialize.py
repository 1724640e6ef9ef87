from __future__ import annotations

"""YAML (de)serialization for file maps and saved stack outputs.

A file-map document is a list of mappings:

    - s3_key: index.html
      file: public/index.html
      metadata:
        cache_control: max-age=60

`file` may be absolute or relative; relative paths are resolved against the
base directory given when loading.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError


FileMap = Dict[str, Any]


def _coerce(entry: Any, base: Optional[Path]) -> FileMap:
    if not isinstance(entry, dict) or "file" not in entry:
        raise ConfigError(f"Invalid file map entry: {entry!r}", metadata={"entry": entry})
    fm = {k.replace("-", "_"): v for k, v in entry.items()}
    if "s3_key" not in fm:
        raise ConfigError(f"File map entry without s3_key: {entry!r}", metadata={"entry": entry})
    path = Path(str(fm["file"])).expanduser()
    if not path.is_absolute() and base is not None:
        path = base / path
    fm["file"] = path
    fm["metadata"] = {
        k.replace("-", "_"): v for k, v in (fm.get("metadata") or {}).items()
    }
    return fm


def file_maps_to_str(file_maps: List[FileMap]) -> str:
    docs = []
    for fm in file_maps:
        doc = {"s3_key": fm["s3_key"], "file": str(fm["file"])}
        if fm.get("metadata"):
            doc["metadata"] = dict(fm["metadata"])
        docs.append(doc)
    return yaml.safe_dump(docs, sort_keys=False)


def str_to_file_maps(text: str, base: Optional[Path] = None) -> List[FileMap]:
    data = yaml.safe_load(text) or []
    if not isinstance(data, list):
        raise ConfigError("A file map document must be a list of entries")
    return [_coerce(entry, base) for entry in data]


def load_file_maps(path: str | Path, base: Optional[Path] = None) -> List[FileMap]:
    p = Path(path)
    with open(p, "r", encoding="utf-8") as f:
        return str_to_file_maps(f.read(), base if base is not None else p.parent)


def save_outputs(
    file_name: str | Path, stack_id: str, outputs: Dict[str, Dict[str, Any]]
) -> Dict[str, Any]:
    """Write `{stack_id, <output key>: <value>}` to `file_name` and return it."""
    flat: Dict[str, Any] = {"stack_id": stack_id}
    for k, o in outputs.items():
        flat[k] = o.get("output_value")
    with open(file_name, "w", encoding="utf-8") as f:
        yaml.safe_dump(flat, f, sort_keys=False, default_flow_style=False)
    return flat
