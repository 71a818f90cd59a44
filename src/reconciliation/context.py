"""Per-run state for the reconciliation engine."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, Set

from src.scraper.timestamps import to_iso, utc_now


@dataclass
class EntityStats:
    """Write outcomes for one entity type."""

    inserted: int = 0
    updated: int = 0
    failed: int = 0

    @property
    def reconciled(self) -> int:
        return self.inserted + self.updated

    def record(self, inserted: bool) -> None:
        if inserted:
            self.inserted += 1
        else:
            self.updated += 1


@dataclass
class ReconciliationStats:
    """Statistics from one reconciliation run."""

    submolts: EntityStats = field(default_factory=EntityStats)
    agents: EntityStats = field(default_factory=EntityStats)
    posts: EntityStats = field(default_factory=EntityStats)
    comments: EntityStats = field(default_factory=EntityStats)
    agents_completed: int = 0
    submolts_completed: int = 0
    aggregates_recomputed: int = 0
    aggregates_failed: int = 0
    processing_time_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReconciliationContext:
    """Id maps and bookkeeping owned by a single reconciliation run.

    Created at the start of a run and discarded at its end; nothing here is
    shared between cycles.
    """

    now: datetime = field(default_factory=utc_now)
    submolt_ids: Dict[str, str] = field(default_factory=dict)
    agent_ids: Dict[str, str] = field(default_factory=dict)
    post_ids: Dict[str, str] = field(default_factory=dict)
    touched_agents: Set[str] = field(default_factory=set)
    stats: ReconciliationStats = field(default_factory=ReconciliationStats)

    @property
    def seen_at(self) -> str:
        """Ingestion time as stored in timestamp columns."""
        return to_iso(self.now)
