"""Metric containers stored per quarter and the project record owning them."""

import dataclasses
from dataclasses import dataclass, field
from datetime import date
from typing import ClassVar

from quarters import QuarterStore


@dataclass
class MetricsContainer:
    """Base for quarter data: every dataclass field is a numeric metric.

    Field order is the canonical metric order. Metrics listed in
    AGGREGATED_METRICS are averaged over a year, all others are summed.
    """

    AGGREGATED_METRICS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def metrics(cls) -> list[str]:
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def aggregated_metrics(cls) -> list[str]:
        return list(cls.AGGREGATED_METRICS)

    @classmethod
    def from_mapping(cls, mapping: dict):
        """Build from a snapshot; unknown names are ignored, missing ones stay zero."""
        return cls(**{name: mapping[name] for name in cls.metrics() if name in mapping})

    def metric_values(self) -> list:
        return [getattr(self, name) for name in self.metrics()]

    def to_mapping(self) -> dict:
        return dict(zip(self.metrics(), self.metric_values()))


@dataclass
class AgilityStats(MetricsContainer):
    """Issue and pull request throughput of a repository."""

    AGGREGATED_METRICS: ClassVar[tuple[str, ...]] = ("issues_processed_in_avg",)

    issues_opened_count: int = 0
    issues_closed_count: int = 0
    pull_requests_opened_count: int = 0
    pull_requests_merged_count: int = 0
    issues_processed_in_avg: float = 0.0


@dataclass
class CommunityStats(MetricsContainer):
    AGGREGATED_METRICS: ClassVar[tuple[str, ...]] = ("stack_overflow_answered_questions_percent",)

    contributors_count: int = 0
    stack_overflow_questions_count: int = 0
    stack_overflow_answered_questions_percent: float = 0.0


@dataclass
class ProjectActivity:
    """Quarterly and all-time activity of one project."""

    name: str
    agility: QuarterStore = field(default_factory=lambda: QuarterStore(AgilityStats))
    community: QuarterStore = field(default_factory=lambda: QuarterStore(CommunityStats))
    agility_total: AgilityStats = field(default_factory=AgilityStats)
    community_total: CommunityStats = field(default_factory=CommunityStats)

    def prepare_time_bounds(self) -> tuple[date, date] | None:
        """Fill quarter gaps and return the first and last quarter start dates seen."""
        stores = [self.agility, self.community]
        for store in stores:
            store.fullfill()

        filled = [store for store in stores if len(store)]
        if not filled:
            return None
        start = min(store.start_date for store in filled)
        end = max(store.end_date for store in filled)
        return start.date(), end.date()

    def to_mapping(self) -> dict:
        return {
            "name": self.name,
            "agility": {
                "total": self.agility_total.to_mapping(),
                "quarters": self.agility.to_mapping(),
            },
            "community": {
                "total": self.community_total.to_mapping(),
                "quarters": self.community.to_mapping(),
            },
        }

    @classmethod
    def from_mapping(cls, mapping: dict):
        agility = mapping.get("agility", {})
        community = mapping.get("community", {})
        return cls(
            name=mapping["name"],
            agility=QuarterStore.from_mapping(agility.get("quarters", {}), AgilityStats),
            community=QuarterStore.from_mapping(community.get("quarters", {}), CommunityStats),
            agility_total=AgilityStats.from_mapping(agility.get("total", {})),
            community_total=CommunityStats.from_mapping(community.get("total", {})),
        )
