"""Time-based eligibility for automatic shortening.

Content published on or after the cutoff is "new" and gets a short link
automatically; anything older is "legacy" and is left alone unless a caller
forces it.

Flow Diagram — validate(item)
=============================
::
    ┌──────────────────┐
    │ validate(item)    │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ identifier+title? │──── no ───▶ has_valid_data = False
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ published_at or   │──── missing / unparseable ───▶ reason, fail closed
    │ created_at        │
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ date >= cutoff ?  │──── no ───▶ legacy (eligible only when forced)
    └────────┬─────────┘
             ▼
        eligible

Key Behaviours
===============
- Pure: the same item and cutoff always give the same result; nothing is cached.
- ``force`` lifts only the cutoff comparison. Items without an identifier and
  title, or without a readable date, are never eligible.
- Naive datetimes and date strings without an offset are read as UTC.
"""

import datetime
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from linkgate.enums import ItemCategory, RecommendationType
from linkgate.models import ContentItem, EligibilityResult

__all__ = [
    "EligibilityValidator",
    "CategorizedItem",
    "ItemCategorization",
    "Recommendation",
    "ValidationReport",
    "parse_timestamp",
]


def parse_timestamp(value: datetime.datetime | str | int | float | None) -> datetime.datetime | None:
    """Parse a CMS timestamp into an aware UTC datetime.

    Numbers are epoch milliseconds, as CMS webhooks send them.

    Raises:
        ValueError: If ``value`` is a string that is not ISO-8601.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.datetime.fromisoformat(value.strip())
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
    else:
        raise ValueError(f"unsupported timestamp type {type(value).__name__}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


@dataclass(frozen=True)
class CategorizedItem:
    item: ContentItem
    validation: EligibilityResult


@dataclass
class ItemCategorization:
    new: list[CategorizedItem] = field(default_factory=list)
    legacy: list[CategorizedItem] = field(default_factory=list)
    invalid: list[CategorizedItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.new) + len(self.legacy) + len(self.invalid)

    @property
    def new_percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(len(self.new) / self.total * 100)

    def stats(self) -> dict[str, int]:
        return {
            ItemCategory.NEW: len(self.new),
            ItemCategory.LEGACY: len(self.legacy),
            ItemCategory.INVALID: len(self.invalid),
            "new_percentage": self.new_percentage,
        }


@dataclass(frozen=True)
class Recommendation:
    type: RecommendationType
    title: str
    description: str
    action: str
    priority: str


@dataclass(frozen=True)
class ValidationReport:
    summary: dict[str, Any]
    categorization: ItemCategorization
    recommendations: list[Recommendation]


class EligibilityValidator:
    def __init__(self, cutoff: datetime.datetime) -> None:
        if cutoff.tzinfo is None:
            cutoff = cutoff.replace(tzinfo=datetime.timezone.utc)
        self.cutoff = cutoff

    def validate(self, item: ContentItem | None, force: bool = False) -> EligibilityResult:
        if item is None:
            return EligibilityResult(
                is_eligible=False,
                is_new_item=False,
                has_valid_data=False,
                publish_date=None,
                cutoff=self.cutoff,
                reasons=("item is missing",),
                forced=force,
            )

        reasons: list[str] = []
        if not (item.identifier or "").strip():
            reasons.append("missing identifier")
        if not (item.title or "").strip():
            reasons.append("missing title")
        has_valid_data = not reasons

        publish_date = None
        raw_date = item.published_at or item.created_at
        if raw_date is None or raw_date == "":
            reasons.append("missing publishedAt and createdAt dates")
        else:
            try:
                publish_date = parse_timestamp(raw_date)
            except (TypeError, ValueError, OverflowError, OSError):
                reasons.append(f"invalid date format: {raw_date}")

        is_new_item = publish_date is not None and publish_date >= self.cutoff
        if publish_date is not None and not is_new_item:
            reasons.append(f"published before cutoff {self.cutoff.isoformat()}")

        is_eligible = has_valid_data and publish_date is not None and (is_new_item or force)
        return EligibilityResult(
            is_eligible=is_eligible,
            is_new_item=is_new_item,
            has_valid_data=has_valid_data,
            publish_date=publish_date,
            cutoff=self.cutoff,
            reasons=tuple(reasons),
            forced=force,
        )

    def categorize(self, items: Iterable[ContentItem]) -> ItemCategorization:
        categorization = ItemCategorization()
        for item in items:
            validation = self.validate(item)
            entry = CategorizedItem(item=item, validation=validation)
            if not validation.is_valid:
                categorization.invalid.append(entry)
            elif validation.is_new_item:
                categorization.new.append(entry)
            else:
                categorization.legacy.append(entry)
        return categorization

    def build_report(
        self,
        items: Iterable[ContentItem],
        now: datetime.datetime | None = None,
    ) -> ValidationReport:
        categorization = self.categorize(items)
        report_date = now or datetime.datetime.now(datetime.timezone.utc)
        summary = {
            "total_items": categorization.total,
            "new_items": len(categorization.new),
            "legacy_items": len(categorization.legacy),
            "invalid_items": len(categorization.invalid),
            "new_percentage": categorization.new_percentage,
            "cutoff": self.cutoff,
            "report_date": report_date,
        }
        return ValidationReport(
            summary=summary,
            categorization=categorization,
            recommendations=self._recommendations(categorization),
        )

    def select_bulk_candidates(
        self,
        items: Iterable[ContentItem],
        include_popular_legacy: bool = False,
        popularity_threshold: int = 100,
        max_bulk_size: int = 50,
    ) -> list[ContentItem]:
        """New items first, then (optionally) popular legacy items, capped at ``max_bulk_size``."""
        categorization = self.categorize(items)
        candidates = [entry.item for entry in categorization.new]
        if include_popular_legacy:
            candidates.extend(
                entry.item
                for entry in categorization.legacy
                if entry.item.views > popularity_threshold
                or entry.item.shares > popularity_threshold
                or entry.item.featured
            )
        return candidates[: max(max_bulk_size, 0)]

    @staticmethod
    def _recommendations(categorization: ItemCategorization) -> list[Recommendation]:
        recommendations = []
        total = categorization.total
        percentage = categorization.new_percentage

        if categorization.invalid:
            recommendations.append(
                Recommendation(
                    type=RecommendationType.ERROR,
                    title="Fix invalid items",
                    description=f"{len(categorization.invalid)} items have missing or invalid data",
                    action="Review items missing an identifier, title or publish date",
                    priority="high",
                )
            )
        if categorization.legacy:
            recommendations.append(
                Recommendation(
                    type=RecommendationType.INFO,
                    title="Legacy items available",
                    description=f"{len(categorization.legacy)} items were published before the cutoff",
                    action="Consider shortening popular legacy items in bulk",
                    priority="low",
                )
            )
        if percentage < 50 and total > 10:
            recommendations.append(
                Recommendation(
                    type=RecommendationType.WARNING,
                    title="Many legacy items",
                    description=f"Only {percentage}% of items are shortened automatically",
                    action="Run a bulk shorten for important legacy items",
                    priority="medium",
                )
            )
        if percentage >= 80 and total > 5:
            recommendations.append(
                Recommendation(
                    type=RecommendationType.SUCCESS,
                    title="Good short link coverage",
                    description=f"{percentage}% of items are shortened automatically",
                    action="Keep an eye on webhook success rates",
                    priority="low",
                )
            )
        return recommendations
