"""Small helpers for reading task options out of the params dict."""

from __future__ import annotations

from typing import Dict, Optional

from ..errors import MissingOptionError


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def require(value, message: str):
    """Return `value` or stop the task with `message` when it is missing."""
    if value is None or value == "" or value == {}:
        raise MissingOptionError(message)
    return value


def dasherize(domain: str) -> str:
    return (domain or "").strip().replace(".", "-")


def stack_name(domain: str) -> str:
    return f"{dasherize(domain)}-confetti-static-site"


def outputs_file_name(domain: str) -> str:
    return f"{dasherize(domain)}.confetti.yaml"


def runs_dir(p: Dict) -> str:
    return _get(p, "project", "runs_dir", default="runs")


def project_log_file(p: Dict) -> Optional[str]:
    return _get(p, "project", "log_file")


def normalize_key(key: str) -> str:
    return key.strip().replace("-", "_").lower()


def parse_kv(pairs: Optional[list[str]]) -> Dict[str, str]:
    """Parse repeated `K=V` options into a dict with snake_case keys."""
    out: Dict[str, str] = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise MissingOptionError(f"Expected K=V, got {pair!r}")
        k, v = pair.split("=", 1)
        out[normalize_key(k)] = v
    return out
