"""Load configuration from YAML with env var substitution, plus typed getters."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

DEFAULT_AD_PLACEMENTS = [
    "Grande Principal",
    "Mediana Principal",
    "Pequeña Principal",
    "Sidebar",
]

DEFAULT_RELATED_CATEGORIES = {
    "Política": ["Economía", "Sociedad"],
    "Deporte": ["Sociedad", "Espectáculos"],
    "Mundo": ["Política", "Economía"],
    "Economía": ["Política", "Mundo"],
    "Sociedad": ["Política", "Columna"],
    "Policiales": ["Sociedad", "Mundo"],
    "Espectáculos": ["Sociedad", "Columna"],
    "Columna": ["Política", "Sociedad"],
}


def _load_dotenv(path: str | Path = ".env") -> None:
    """Load a .env file into os.environ (without overwriting existing vars)."""
    env_path = Path(path)
    if not env_path.is_file():
        return
    for raw in env_path.read_text().splitlines():
        line = raw.strip()
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or key.startswith("#"):
            continue
        os.environ.setdefault(key, value.strip().strip("'\""))


_ENV_PATTERN = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _env_value(match: re.Match) -> str:
    name, default = match.group(1), match.group(2)
    # ${VAR:-default} also covers a variable set to ""
    return os.environ.get(name) or (default or "")


def _resolve_env_vars(value: Any) -> Any:
    """Substitute ${VAR} and ${VAR:-default} in every string of the tree."""
    if isinstance(value, dict):
        return {key: _resolve_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(item) for item in value]
    if isinstance(value, str) and "${" in value:
        return _ENV_PATTERN.sub(_env_value, value)
    return value


def load_config(path: str | Path = "config.yaml") -> dict[str, Any]:
    """Load config from YAML file and resolve environment variables."""
    _load_dotenv()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return _resolve_env_vars(raw)


def _section(config: dict, name: str) -> dict:
    return config.get(name) or {}


def get_cache_config(config: dict) -> dict:
    """TTLs and size bound for the aggregation cache."""
    cfg = _section(config, "cache")
    return {
        "ttl_seconds": float(cfg.get("ttl_seconds", 60)),
        "auxiliary_ttl_seconds": float(cfg.get("auxiliary_ttl_seconds", 900)),
        "prefetch_ttl_seconds": float(cfg.get("prefetch_ttl_seconds", 600)),
        "max_entries": int(cfg.get("max_entries", 50)),
    }


def get_snapshot_config(config: dict) -> dict:
    """Shape of the assembled snapshots."""
    cfg = _section(config, "snapshot")
    return {
        "article_limit": int(cfg.get("article_limit", 15)),
        "topic_article_limit": int(cfg.get("topic_article_limit", 20)),
        "ad_placements": list(cfg.get("ad_placements", DEFAULT_AD_PLACEMENTS)),
    }


def get_interest_config(config: dict) -> dict:
    """Weights and decay for the interest model."""
    cfg = _section(config, "interest")
    return {
        "half_life_seconds": float(cfg.get("half_life_seconds", 300)),
        "visit_weight": float(cfg.get("visit_weight", 10.0)),
        "scroll_weight": float(cfg.get("scroll_weight", 5.0)),
        "reading_weight_per_second": float(
            cfg.get("reading_weight_per_second", 0.1),
        ),
        "reading_cap_ms": float(cfg.get("reading_cap_ms", 120_000)),
        "prune_threshold": float(cfg.get("prune_threshold", 0.01)),
    }


def get_behavior_config(config: dict) -> dict:
    cfg = _section(config, "behavior")
    return {
        "buffer_size": int(cfg.get("buffer_size", 200)),
        "scroll_sample_seconds": float(cfg.get("scroll_sample_seconds", 1.0)),
    }


def get_prefetch_config(config: dict) -> dict:
    """Scheduler limits, including the related-category map."""
    cfg = _section(config, "prefetch")
    return {
        "enabled": bool(cfg.get("enabled", True)),
        "top_k": int(cfg.get("top_k", 5)),
        "max_in_flight": int(cfg.get("max_in_flight", 2)),
        "interval_seconds": float(cfg.get("interval_seconds", 30)),
        "idle_cutoff_seconds": float(cfg.get("idle_cutoff_seconds", 120)),
        "related_weight": float(cfg.get("related_weight", 0.5)),
        "related": dict(cfg.get("related", DEFAULT_RELATED_CATEGORIES)),
    }


def get_source_config(config: dict, role: str) -> dict:
    """Source settings for a role: articles, ads or auxiliary."""
    return dict(_section(config, "sources").get(role) or {})


def get_image_base_url(config: dict) -> str:
    return _section(config, "images").get("base_url", "") or ""


def get_log_dir(config: dict) -> str:
    return _section(config, "logging").get("dir", "data")
