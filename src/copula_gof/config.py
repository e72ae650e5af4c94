"""Configuration loading and resolution."""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .errors import ConfigError
from .families import CopulaFamily
from .gof import STATISTICS
from .selection import CRITERIA

DEFAULT_CONFIG: Dict[str, Any] = {
    "families": ["gaussian", "t", "clayton", "gumbel", "frank", "comonotonic"],
    "min_sample_size": 100,
    "seed": None,
    "selection": {
        "criterion": "aic",
        "tie_tolerance": 1e-6,
    },
    "gof": {
        "statistic": "kendall_cvm",
        "n_bootstrap": 1000,
        "max_drop_rate": 0.10,
        "timeout": None,
        "kendall_reference_size": 2048,
    },
    "parallel": {
        "workers": 1,
        "family_workers": 1,
    },
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries and return a new dictionary."""

    out = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")
    with p.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping at root: {p}")
    return data


def resolve_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Resolve run configuration from defaults, an optional YAML file and overrides."""

    resolved = deepcopy(DEFAULT_CONFIG)
    if config_path is not None:
        resolved = deep_merge(resolved, load_yaml(config_path))
    if overrides:
        resolved = deep_merge(resolved, overrides)
    validate_config(resolved)
    return resolved


def dump_yaml(data: Dict[str, Any], out_path: Union[str, Path]) -> None:
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)


def _require_int(value: Any, name: str, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(f"{name} must be an integer >= {minimum}, got {value!r}")


def validate_config(cfg: Dict[str, Any]) -> None:
    families = cfg.get("families")
    if not isinstance(families, (list, tuple)) or not families:
        raise ConfigError("families must be a non-empty list")
    for fam in families:
        try:
            CopulaFamily.parse(fam)
        except ValueError as e:
            raise ConfigError(str(e)) from None

    _require_int(cfg.get("min_sample_size"), "min_sample_size", 2)
    seed = cfg.get("seed")
    if seed is not None:
        _require_int(seed, "seed", 0)

    selection = cfg.get("selection", {})
    criterion = str(selection.get("criterion", "")).lower()
    if criterion not in CRITERIA:
        raise ConfigError(f"Unsupported selection.criterion '{criterion}'. Supported: {'|'.join(CRITERIA)}")
    if float(selection.get("tie_tolerance", 0.0)) < 0:
        raise ConfigError("selection.tie_tolerance must be >= 0")

    gof = cfg.get("gof", {})
    if gof.get("statistic") not in STATISTICS:
        raise ConfigError(
            f"Unsupported gof.statistic '{gof.get('statistic')}'. Supported: {'|'.join(STATISTICS)}"
        )
    _require_int(gof.get("n_bootstrap"), "gof.n_bootstrap", 0)
    _require_int(gof.get("kendall_reference_size"), "gof.kendall_reference_size", 64)
    drop = gof.get("max_drop_rate")
    if not isinstance(drop, (int, float)) or not 0.0 <= drop <= 1.0:
        raise ConfigError(f"gof.max_drop_rate must be in [0, 1], got {drop!r}")
    timeout = gof.get("timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigError(f"gof.timeout must be a positive number of seconds, got {timeout!r}")

    parallel = cfg.get("parallel", {})
    workers = parallel.get("workers")
    if isinstance(workers, bool) or not isinstance(workers, int) or workers == 0 or workers < -1:
        raise ConfigError(f"parallel.workers must be a positive integer or -1, got {workers!r}")
    _require_int(parallel.get("family_workers"), "parallel.family_workers", 1)
