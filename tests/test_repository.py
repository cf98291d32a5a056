"""Tests for the store repository: idempotent upserts and range queries."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from factline.models.store_models import MetricDefinition, MetricKind, MetricSample, Occurrence
from factline.store import repository
from factline.store.repository import StoreWriteError
from tests.helpers import definition, occurrence, sample, write


def _snapshot(session: Session):
    """Store contents without write timestamps."""
    definitions = [
        (d.id, d.name, d.name_translated, d.kind, d.unit, d.sort_key)
        for d in session.exec(select(MetricDefinition).order_by(MetricDefinition.id)).all()
    ]
    occurrences = [
        (o.id, o.name, o.start_date, o.end_date, o.calendar_id)
        for o in session.exec(select(Occurrence).order_by(Occurrence.id)).all()
    ]
    samples = [
        (s.occurrence_id, s.metric_id, s.label, s.value, s.value_text, s.modified_date)
        for s in session.exec(
            select(MetricSample).order_by(MetricSample.occurrence_id, MetricSample.metric_id)
        ).all()
    ]
    return definitions, occurrences, samples


PAYLOAD = dict(
    definitions=[definition(), definition(id=6, translated="Offering", unit="EUR", sort_key=1)],
    occurrences=[
        occurrence(1, "Service", datetime(2024, 1, 7, 10, 0)),
        occurrence(2, "Youth", datetime(2024, 1, 12, 19, 0)),
    ],
    samples=[sample(1, 5, 120), sample(1, 6, 350.5), sample(2, 5, 30)],
)


class TestUpserts:
    """Replace-on-write upserts."""

    def test_applying_payload_twice_matches_applying_once(self, session):
        write(session, **PAYLOAD)
        once = _snapshot(session)

        write(session, **PAYLOAD)
        twice = _snapshot(session)

        assert once == twice
        assert len(twice[0]) == 2
        assert len(twice[1]) == 2
        assert len(twice[2]) == 3

    def test_at_most_one_sample_per_pair(self, session):
        write(
            session,
            occurrences=[occurrence(1, "Service", datetime(2024, 1, 7))],
            samples=[sample(1, 5, 10), sample(1, 5, 11), sample(1, 5, 12)],
        )

        rows = session.exec(select(MetricSample)).all()
        assert len(rows) == 1
        assert rows[0].value == 12

    def test_later_write_wins(self, session):
        write(session, **PAYLOAD)
        write(
            session,
            occurrences=[occurrence(1, "Renamed", datetime(2024, 1, 7, 10, 0))],
            samples=[sample(1, 5, 999)],
        )

        row = session.exec(
            select(MetricSample).where(
                MetricSample.occurrence_id == 1, MetricSample.metric_id == 5
            )
        ).one()
        assert row.value == 999
        assert row.label == "Renamed"
        assert session.get(Occurrence, 1).name == "Renamed"

    def test_numeric_and_text_values_are_exclusive(self, session):
        write(
            session,
            occurrences=[occurrence(1, "Service", datetime(2024, 1, 7))],
            samples=[sample(1, 5, 42), sample(1, 7, "choir")],
        )
        numeric = session.exec(select(MetricSample).where(MetricSample.metric_id == 5)).one()
        text = session.exec(select(MetricSample).where(MetricSample.metric_id == 7)).one()

        assert (numeric.value, numeric.value_text) == (42.0, None)
        assert (text.value, text.value_text) == (None, "choir")

    def test_type_change_clears_previous_column(self, session):
        write(
            session,
            occurrences=[occurrence(1, "Service", datetime(2024, 1, 7))],
            samples=[sample(1, 5, 42)],
        )
        write(session, samples=[sample(1, 5, "n/a")])

        row = session.exec(select(MetricSample)).one()
        assert row.value is None
        assert row.value_text == "n/a"

    def test_definition_kind_mapping(self, session):
        write(session, definitions=[definition(id=1, type="number"), definition(id=2, type="select")])

        assert session.get(MetricDefinition, 1).kind == MetricKind.NUMERIC
        assert session.get(MetricDefinition, 2).kind == MetricKind.CATEGORICAL
        assert definition(type="select").kind is MetricKind.CATEGORICAL

    def test_commit_failure_raises_store_write_error(self, engine):
        class BrokenSession(Session):
            def commit(self):
                raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        with BrokenSession(engine) as broken:
            repository.upsert_metric_definition(broken, definition())
            with pytest.raises(StoreWriteError):
                repository.commit_or_raise(broken)

        with Session(engine) as fresh:
            assert fresh.exec(select(MetricDefinition)).all() == []


class TestReads:
    """Read queries behind discovery and aggregation."""

    def test_numeric_metrics_sorted_by_sort_key(self, session):
        write(
            session,
            definitions=[
                definition(id=1, translated="B", sort_key=2),
                definition(id=2, translated="A", sort_key=1),
                definition(id=3, translated="Choice", type="select", sort_key=0),
            ],
        )

        assert [m.id for m in repository.list_numeric_metrics(session)] == [2, 1]

    def test_category_labels_are_distinct_and_sorted(self, session):
        write(session, **PAYLOAD)

        assert repository.list_category_labels(session) == ["Service", "Youth"]

    def test_list_samples_range_is_inclusive_and_ordered(self, attendance):
        rows = repository.list_samples(
            attendance, 5, datetime(2024, 1, 15, 10, 0), datetime(2024, 2, 20, 10, 0)
        )

        assert rows == [
            (10.0, datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)),
            (20.0, datetime(2024, 2, 20, 10, 0, tzinfo=timezone.utc)),
        ]

    def test_list_samples_label_filter(self, attendance):
        rows = repository.list_samples(
            attendance, 5, datetime(2024, 1, 1), datetime(2024, 12, 31), labels=["Y"]
        )

        assert rows == [(20.0, datetime(2024, 2, 20, 10, 0, tzinfo=timezone.utc))]

    def test_list_samples_accepts_bounds_in_any_offset(self, attendance):
        berlin = timezone(timedelta(hours=1))
        rows = repository.list_samples(
            attendance,
            5,
            datetime(2024, 1, 15, 11, 0, tzinfo=berlin),
            datetime(2024, 1, 15, 11, 0, tzinfo=berlin),
        )

        assert rows == [(10.0, datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))]
        assert rows[0][1].utcoffset() == timedelta(0)

    def test_text_samples_never_aggregate(self, session):
        write(
            session,
            occurrences=[occurrence(1, "Service", datetime(2024, 1, 7))],
            samples=[sample(1, 5, "twelve")],
        )

        assert repository.list_samples(session, 5, datetime(2024, 1, 1), datetime(2024, 12, 31)) == []
        assert repository.yearly_sum(session, 5, 2024) == (0.0, 0)

    def test_monthly_sums(self, attendance):
        rows = repository.monthly_sums(attendance, 5, datetime(2024, 1, 1), datetime(2024, 2, 28))

        assert rows == [(2024, 1, 10.0, 1), (2024, 2, 20.0, 1)]

    def test_yearly_includes_last_day_of_year(self, session):
        write(
            session,
            occurrences=[occurrence(1, "Late", datetime(2024, 12, 31, 18, 0))],
            samples=[sample(1, 5, 7)],
        )

        assert repository.yearly_sum(session, 5, 2024) == (7.0, 1)
        assert repository.yearly_sum(session, 5, 2025) == (0.0, 0)

    def test_watermark(self, session):
        assert repository.get_sync_watermark(session) is None

        before = datetime.now(timezone.utc)
        write(session, **PAYLOAD)

        watermark = repository.get_sync_watermark(session)
        assert watermark is not None
        assert watermark.tzinfo is not None
        assert watermark >= before.replace(microsecond=0)
