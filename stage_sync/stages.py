# stage_sync/stages.py
"""
Stage Catalog: the ordered table of production stages.

Each stage maps a source signal (an order metafield or an order tag) to the
timestamp metafield recording when the order first entered that stage, and
optionally to a staff-attribution metafield. The catalog is built once at
startup and handed to the reconciler; nothing here is mutated afterwards.
"""
import json
from dataclasses import dataclass
from typing import Iterator, Optional

from .errors import ConfigError

SOURCE_METAFIELD = "metafield"
SOURCE_TAG = "tag"
SOURCES = (SOURCE_METAFIELD, SOURCE_TAG)
STRING_FIELDS = ("name", "source_key", "timestamp_key", "staff_key", "display_name", "source")


@dataclass(frozen=True)
class Stage:
    name: str
    source_key: str
    timestamp_key: str
    staff_key: Optional[str] = None
    display_name: str = ""
    source: str = SOURCE_METAFIELD

    @property
    def label(self) -> str:
        return self.display_name or self.name


# (name, display name) in pipeline order
DEFAULT_STAGES = [
    ("sent_to_design_production", "Sent to Design/Production"),
    ("pending_customer_approval", "Pending Customer Approval"),
    ("production_initiated",      "Production Initiated"),
    ("in_production",             "In Production"),
    ("cleaning_packaging",        "Cleaning & Packaging"),
    ("packed_ready_to_ship",      "Packed & Ready to Ship"),
    ("shipped_out",               "Shipped Out"),
]


class StageCatalog:
    """Immutable, insertion-ordered sequence of stages."""

    def __init__(self, stages):
        stages = tuple(stages)
        _check_unique(stages)
        self._stages = stages

    def __iter__(self) -> Iterator[Stage]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __getitem__(self, idx) -> Stage:
        return self._stages[idx]

    def get(self, name: str) -> Optional[Stage]:
        for s in self._stages:
            if s.name == name:
                return s
        return None


def _check_unique(stages: tuple) -> None:
    seen_names, seen_ts = set(), set()
    for s in stages:
        if s.source not in SOURCES:
            raise ConfigError(f"Stage {s.name!r}: unknown source {s.source!r}")
        if s.name in seen_names:
            raise ConfigError(f"Duplicate stage name {s.name!r}")
        if s.timestamp_key in seen_ts:
            raise ConfigError(f"Duplicate timestamp key {s.timestamp_key!r}")
        seen_names.add(s.name)
        seen_ts.add(s.timestamp_key)


def stage_from_dict(raw: dict) -> Stage:
    if not isinstance(raw, dict):
        raise ConfigError(f"Stage entry must be an object: {raw!r}")
    for field in STRING_FIELDS:
        val = raw.get(field)
        if val is not None and not isinstance(val, str):
            raise ConfigError(f"Stage entry field {field!r} must be a string: {raw!r}")
    name = (raw.get("name") or "").strip()
    if not name:
        raise ConfigError(f"Stage entry without a name: {raw!r}")
    staff_key = raw.get("staff_key", f"{name}_staff")
    return Stage(
        name=name,
        source_key=raw.get("source_key") or name,
        timestamp_key=raw.get("timestamp_key") or f"{name}_timestamp",
        staff_key=staff_key or None,
        display_name=raw.get("display_name") or name.replace("_", " ").title(),
        source=raw.get("source") or SOURCE_METAFIELD,
    )


def default_catalog() -> StageCatalog:
    return StageCatalog(
        Stage(
            name=name,
            source_key=name,
            timestamp_key=f"{name}_timestamp",
            staff_key=f"{name}_staff",
            display_name=display,
        )
        for name, display in DEFAULT_STAGES
    )


def load_catalog(path: str) -> StageCatalog:
    try:
        with open(path, encoding="utf-8") as fh:
            raw = json.load(fh)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read stage catalog {path}: {e}") from e
    if not isinstance(raw, list) or not raw:
        raise ConfigError(f"Stage catalog {path} must be a non-empty JSON list")
    return StageCatalog(stage_from_dict(entry) for entry in raw)
