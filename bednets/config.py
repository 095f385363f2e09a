"""
Configuration for the matching and weighting pipeline.

Every option recognised by :class:`~bednets.comparison.CausalComparison` lives
on one of three frozen dataclasses. They can be built directly or from a plain
mapping, using either nested sections or dotted keys::

    AnalysisConfig.from_dict({
        "matching": {"replace": False},
        "ipw.truncate_at": 10,
        "adjustment_set": ["income", "temperature", "health"],
    })
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from typing import Any, Mapping

MATCHING_METHODS = ("nearest",)
DISTANCES = ("mahalanobis", "euclidean")
COVARIANCE_SUBSETS = ("pooled", "control", "treated")
ESTIMANDS = ("ate", "att", "atc")


@dataclass(frozen=True)
class MatchingConfig:
    method: str = "nearest"
    distance: str = "mahalanobis"
    replace: bool = True
    # Rows the Mahalanobis covariance is estimated from.
    covariance: str = "pooled"

    def __post_init__(self) -> None:
        _check_choice("matching.method", self.method, MATCHING_METHODS)
        _check_choice("matching.distance", self.distance, DISTANCES)
        _check_choice("matching.covariance", self.covariance, COVARIANCE_SUBSETS)
        if not isinstance(self.replace, bool):
            raise ValueError(f"matching.replace must be a bool, got {self.replace!r}")


@dataclass(frozen=True)
class IPWConfig:
    estimand: str = "ate"
    # Hard cap applied to the weights; None disables truncation.
    truncate_at: float | None = None
    # (lo, hi) bounds for propensities; None means degenerate scores raise.
    clip: tuple[float, float] | None = None

    def __post_init__(self) -> None:
        _check_choice("ipw.estimand", self.estimand, ESTIMANDS)
        if self.truncate_at is not None:
            cap = float(self.truncate_at)
            if not math.isfinite(cap) or cap <= 0:
                raise ValueError(f"ipw.truncate_at must be a positive number, got {self.truncate_at!r}")
            object.__setattr__(self, "truncate_at", cap)
        if self.clip is not None:
            lo, hi = (float(v) for v in self.clip)
            if not 0.0 < lo < hi < 1.0:
                raise ValueError(f"ipw.clip must satisfy 0 < lo < hi < 1, got {self.clip!r}")
            object.__setattr__(self, "clip", (lo, hi))


@dataclass(frozen=True)
class AnalysisConfig:
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    ipw: IPWConfig = field(default_factory=IPWConfig)
    # Overrides the DAG-derived adjustment set when given.
    adjustment_set: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.adjustment_set is not None:
            if isinstance(self.adjustment_set, str):
                raise ValueError("adjustment_set must be a list of column names, not a string")
            object.__setattr__(self, "adjustment_set", tuple(sorted(set(self.adjustment_set))))

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> AnalysisConfig:
        """
        Build a config from nested sections and/or dotted keys.

        Raises ``ValueError`` on unknown keys or invalid values.
        """
        flat = _flatten(options)
        sections: dict[str, dict[str, Any]] = {"matching": {}, "ipw": {}}
        adjustment_set = None
        for key, value in flat.items():
            if key == "adjustment_set":
                adjustment_set = value
                continue
            section, _, name = key.partition(".")
            if section not in sections or not name:
                raise ValueError(f"Unknown configuration key: '{key}'")
            sections[section][name] = value

        return cls(
            matching=_build(MatchingConfig, "matching", sections["matching"]),
            ipw=_build(IPWConfig, "ipw", sections["ipw"]),
            adjustment_set=adjustment_set,
        )

    def with_overrides(self, **options: Any) -> AnalysisConfig:
        """
        Return a copy with some options replaced. Dotted keys use ``__`` in
        place of ``.``::

            config.with_overrides(matching__replace=False, ipw__truncate_at=10)
        """
        flat = {k.replace("__", "."): v for k, v in options.items()}
        matching = dict(_flatten({"matching": _as_dict(self.matching)}))
        ipw = dict(_flatten({"ipw": _as_dict(self.ipw)}))
        merged: dict[str, Any] = {**matching, **ipw, "adjustment_set": self.adjustment_set}
        for key in flat:
            if key not in merged:
                raise ValueError(f"Unknown configuration key: '{key}'")
        merged.update(flat)
        return AnalysisConfig.from_dict(merged)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _check_choice(name: str, value: Any, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise ValueError(f"{name} must be one of {list(choices)}, got {value!r}")


def _flatten(options: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for key, value in options.items():
        full = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(_flatten(value, prefix=f"{full}."))
        else:
            flat[full] = value
    return flat


def _as_dict(config) -> dict[str, Any]:
    return {f.name: getattr(config, f.name) for f in fields(config)}


def _build(cls, section: str, values: dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(f"Unknown configuration key(s): {[f'{section}.{k}' for k in unknown]}")
    return cls(**values)
