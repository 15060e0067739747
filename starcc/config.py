"""
config.py

Loads a YAML config, deep-merges it over built-in defaults, applies CLI
overrides and validates the result against schemas/config.schema.json.
"""

from __future__ import annotations
from copy import deepcopy
from typing import Any, Dict, Optional

import yaml

from starcc.utils import validate_config


_DEFAULTS: Dict[str, Any] = {
    "input": {
        "format": "auto",
    },
    "substrate": {
        "num_workers": 4,
        "num_map_tasks": 4,
        "retries": 0,
    },
    "contraction": {
        # counted in single-mode rounds: 60 -> 30 Large/Small pairs
        "max_rounds": 60,
        "combiner": {
            "enabled": True,
            "memory_watermark": 0.8,
            "check_every": 1024,
        },
    },
    "storage": {
        "work_dir": None,
    },
    "output": {
        "renumber": True,
        "write_stats": True,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def apply_overrides(cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> None:
    """Fold flat CLI overrides into ``cfg`` in place; ``None`` values are ignored."""
    if not overrides:
        return

    if overrides.get("input_format") is not None:
        cfg.setdefault("input", {})["format"] = overrides["input_format"]

    sub = cfg.setdefault("substrate", {})
    if overrides.get("num_workers") is not None:
        sub["num_workers"] = int(overrides["num_workers"])
    if overrides.get("num_map_tasks") is not None:
        sub["num_map_tasks"] = int(overrides["num_map_tasks"])
    if overrides.get("retries") is not None:
        sub["retries"] = int(overrides["retries"])

    con = cfg.setdefault("contraction", {})
    if overrides.get("max_rounds") is not None:
        con["max_rounds"] = int(overrides["max_rounds"])
    comb = con.setdefault("combiner", {})
    if overrides.get("combiner") is not None:
        comb["enabled"] = bool(overrides["combiner"])
    if overrides.get("memory_watermark") is not None:
        comb["memory_watermark"] = float(overrides["memory_watermark"])

    if overrides.get("work_dir") is not None:
        cfg.setdefault("storage", {})["work_dir"] = str(overrides["work_dir"])

    out = cfg.setdefault("output", {})
    if overrides.get("renumber") is not None:
        out["renumber"] = bool(overrides["renumber"])
    if overrides.get("write_stats") is not None:
        out["write_stats"] = bool(overrides["write_stats"])


def load_config(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    raw: Dict[str, Any] = {}
    if config_path:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config validation error: top level of {config_path} must be a mapping")

    cfg = _deep_merge(_DEFAULTS, raw)
    apply_overrides(cfg, overrides)
    validate_config(cfg)
    return cfg
