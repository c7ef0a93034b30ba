"""Eligibility validator, categorisation and report tests."""

import datetime

import pytest

from conftest import LEGACY_DATE, NEW_DATE, make_item
from linkgate.eligibility import EligibilityValidator, parse_timestamp
from linkgate.enums import RecommendationType

UTC = datetime.timezone.utc
CUTOFF = datetime.datetime(2025, 9, 29, tzinfo=UTC)


@pytest.fixture
def validator() -> EligibilityValidator:
    return EligibilityValidator(CUTOFF)


def test_item_after_cutoff_is_eligible(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at="2025-09-30T00:00:00Z"))
    assert result.is_eligible is True
    assert result.is_new_item is True
    assert result.has_valid_data is True
    assert result.publish_date == datetime.datetime(2025, 9, 30, tzinfo=UTC)
    assert result.reasons == ()


def test_item_before_cutoff_is_legacy(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at="2025-09-20T00:00:00Z"))
    assert result.is_eligible is False
    assert result.is_new_item is False
    assert result.has_valid_data is True
    assert any("before cutoff" in reason for reason in result.reasons)


def test_item_exactly_at_cutoff_is_new(validator: EligibilityValidator) -> None:
    assert validator.validate(make_item(published_at="2025-09-29T00:00:00+00:00")).is_eligible is True


@pytest.mark.parametrize("slug, title", [(None, "Title"), ("", "Title"), ("slug", None), ("slug", "  ")])
@pytest.mark.parametrize("force", [False, True])
def test_missing_identifier_or_title_is_never_eligible(
    validator: EligibilityValidator, slug: str | None, title: str | None, force: bool
) -> None:
    result = validator.validate(make_item(slug=slug, title=title), force=force)
    assert result.is_eligible is False
    assert result.has_valid_data is False


def test_force_lifts_only_the_date_gate(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at=LEGACY_DATE), force=True)
    assert result.is_eligible is True
    assert result.is_new_item is False
    assert result.forced is True


@pytest.mark.parametrize("published_at", [None, "last tuesday"])
def test_force_never_overrides_a_missing_or_unreadable_date(
    validator: EligibilityValidator, published_at: str | None
) -> None:
    result = validator.validate(make_item(published_at=published_at), force=True)
    assert result.is_eligible is False
    assert result.has_valid_data is True
    assert result.publish_date is None
    assert result.forced is True


def test_missing_dates_fail_closed(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at=None))
    assert result.is_eligible is False
    assert result.publish_date is None
    assert "missing publishedAt and createdAt dates" in result.reasons


def test_unparseable_date_fails_closed(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at="last tuesday"))
    assert result.is_eligible is False
    assert result.publish_date is None
    assert "invalid date format: last tuesday" in result.reasons


def test_created_at_is_used_when_publish_date_missing(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at=None, created_at=NEW_DATE))
    assert result.is_eligible is True


def test_naive_datetime_is_treated_as_utc(validator: EligibilityValidator) -> None:
    result = validator.validate(make_item(published_at=datetime.datetime(2025, 9, 29, 0, 0)))
    assert result.is_new_item is True
    assert result.publish_date.tzinfo is not None


def test_none_item(validator: EligibilityValidator) -> None:
    result = validator.validate(None)
    assert result.is_eligible is False
    assert result.reasons == ("item is missing",)


def test_parse_timestamp_normalises_offsets() -> None:
    parsed = parse_timestamp("2025-09-29T05:30:00+05:30")
    assert parsed == datetime.datetime(2025, 9, 29, tzinfo=UTC)
    assert parsed.tzinfo == UTC
    assert parse_timestamp("2025-10-01") == datetime.datetime(2025, 10, 1, tzinfo=UTC)
    assert parse_timestamp(None) is None


def test_parse_timestamp_reads_epoch_milliseconds() -> None:
    assert parse_timestamp(1759276800000) == datetime.datetime(2025, 10, 1, tzinfo=UTC)
    assert parse_timestamp(1759276800000.0).tzinfo == UTC
    with pytest.raises(ValueError):
        parse_timestamp(True)


def test_categorize(validator: EligibilityValidator) -> None:
    items = [
        make_item(slug="new-1"),
        make_item(slug="new-2"),
        make_item(slug="old-1", published_at=LEGACY_DATE),
        make_item(slug="broken", title=None),
    ]
    categorization = validator.categorize(items)

    assert [entry.item.identifier for entry in categorization.new] == ["new-1", "new-2"]
    assert [entry.item.identifier for entry in categorization.legacy] == ["old-1"]
    assert [entry.item.identifier for entry in categorization.invalid] == ["broken"]
    assert categorization.total == 4
    assert categorization.new_percentage == 50


def test_report_recommends_fixing_invalid_and_notes_legacy(validator: EligibilityValidator) -> None:
    items = [make_item(slug="a"), make_item(slug="b", published_at=LEGACY_DATE), make_item(slug="c", title="")]
    report = validator.build_report(items, now=datetime.datetime(2025, 10, 2, tzinfo=UTC))

    assert report.summary["total_items"] == 3
    assert report.summary["invalid_items"] == 1
    assert report.summary["report_date"] == datetime.datetime(2025, 10, 2, tzinfo=UTC)
    types = [rec.type for rec in report.recommendations]
    assert types == [RecommendationType.ERROR, RecommendationType.INFO]
    assert report.recommendations[0].priority == "high"


def test_report_warns_when_mostly_legacy(validator: EligibilityValidator) -> None:
    items = [make_item(slug=f"old-{i}", published_at=LEGACY_DATE) for i in range(9)]
    items += [make_item(slug=f"new-{i}") for i in range(3)]
    report = validator.build_report(items)

    types = [rec.type for rec in report.recommendations]
    assert RecommendationType.WARNING in types
    assert RecommendationType.SUCCESS not in types


def test_report_celebrates_good_coverage(validator: EligibilityValidator) -> None:
    report = validator.build_report([make_item(slug=f"new-{i}") for i in range(6)])
    assert [rec.type for rec in report.recommendations] == [RecommendationType.SUCCESS]


def test_report_for_no_items(validator: EligibilityValidator) -> None:
    report = validator.build_report([])
    assert report.summary["new_percentage"] == 0
    assert report.recommendations == []


def test_select_bulk_candidates(validator: EligibilityValidator) -> None:
    items = [
        make_item(slug="new-1"),
        make_item(slug="old-quiet", published_at=LEGACY_DATE, views=10),
        make_item(slug="old-viewed", published_at=LEGACY_DATE, views=500),
        make_item(slug="old-featured", published_at=LEGACY_DATE, featured=True),
        make_item(slug="broken", title=None),
    ]

    default = validator.select_bulk_candidates(items)
    assert [item.identifier for item in default] == ["new-1"]

    with_popular = validator.select_bulk_candidates(items, include_popular_legacy=True)
    assert [item.identifier for item in with_popular] == ["new-1", "old-viewed", "old-featured"]

    capped = validator.select_bulk_candidates(items, include_popular_legacy=True, max_bulk_size=2)
    assert len(capped) == 2
