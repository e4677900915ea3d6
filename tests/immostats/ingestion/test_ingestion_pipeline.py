"""
Tests for the ingestion pipeline: failure isolation, pacing and idempotent upserts.
"""
from datetime import datetime, timedelta, timezone

import pytest
import structlog
from sqlalchemy import select

from src.immostats.db.models import IngestionRun, Property
from src.immostats.db.repository import PropertyRepository
from src.immostats.exceptions import FetchError
from src.immostats.ingestion.pipeline import IngestionPipeline, IngestionSummary, build_pipeline, parse_args
from src.immostats.scrapers.demo_source import DemoSource
from src.immostats.transformers.dvf_normalizer import DVFNormalizer


def raw(mutation_id, price="250000", surface="50", department="75"):
    return {
        "id_mutation": mutation_id,
        "date_mutation": "2023-05-02",
        "valeur_fonciere": price,
        "surface_reelle_bati": surface,
        "type_local": "Appartement",
        "code_postal": f"{department}001",
        "nom_commune": "Test",
        "code_departement": department,
        "nombre_pieces_principales": "2",
    }


class FakeSource:
    """Returns canned records per (partition, period); raises for listed failures."""

    def __init__(self, data=None, failing=()):
        self.data = data or {}
        self.failing = set(failing)
        self.calls = []

    def fetch_partition(self, partition_key, period):
        self.calls.append((partition_key, period))
        if (partition_key, period) in self.failing:
            raise FetchError(partition_key, period, ConnectionError("boom"))
        return list(self.data.get((partition_key, period), []))


class FakeClock:
    def __init__(self, start=datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


class FailingRepository(PropertyRepository):
    """Violates the price CHECK constraint for chosen external ids."""

    def __init__(self, poisoned):
        super().__init__()
        self.poisoned = set(poisoned)

    def upsert(self, session, property_data, updated_at=None):
        if property_data["external_id"] in self.poisoned:
            property_data = dict(property_data, price=-1)
        return super().upsert(session, property_data, updated_at=updated_at)


@pytest.fixture
def make_pipeline(session_scope):
    def _make(source, **kwargs):
        kwargs.setdefault("periods", [2023])
        kwargs.setdefault("partitions", ["75"])
        kwargs.setdefault("inter_call_delay", 0)
        kwargs.setdefault("clock", FakeClock())
        return IngestionPipeline(
            source_client=source,
            normalizer=DVFNormalizer(),
            session_scope=session_scope,
            **kwargs,
        )
    return _make


class TestIngestionPipeline:
    """Tests for IngestionPipeline.run"""

    def test_run_saves_normalized_entities(self, make_pipeline, test_db):
        source = FakeSource({("75", 2023): [raw("A"), raw("B"), raw("C", price="1")]})

        summary = make_pipeline(source).run()

        assert summary.fetched == 2
        assert summary.saved == 2
        assert summary.failed == 0
        assert summary.rejected == {"price_out_of_range": 1}
        assert test_db.scalar(select(Property.external_id).where(Property.external_id == "dvf_A")) == "dvf_A"

    def test_iterates_periods_by_partitions(self, make_pipeline):
        source = FakeSource()

        make_pipeline(source, periods=[2023, 2022], partitions=["75", "69"]).run()

        assert source.calls == [("75", 2023), ("69", 2023), ("75", 2022), ("69", 2022)]

    def test_fetch_error_skips_partition_only(self, make_pipeline):
        source = FakeSource(
            {("75", 2023): [raw("A")], ("69", 2023): [raw("B", department="69")]},
            failing={("13", 2023)},
        )

        summary = make_pipeline(source, partitions=["75", "13", "69"]).run()

        assert summary.partitions_failed == 1
        assert summary.saved == 2
        assert len(source.calls) == 3

    def test_all_partitions_failing_completes_with_nothing_saved(self, make_pipeline, test_db):
        source = FakeSource(failing={("75", 2023), ("69", 2023)})

        summary = make_pipeline(source, partitions=["75", "69"]).run()

        assert summary.saved == 0
        assert summary.partitions_failed == 2
        run = test_db.execute(select(IngestionRun)).scalar_one()
        assert run.status == "failure"

    def test_sleeps_between_calls_but_not_after_last(self, make_pipeline):
        sleeps = []
        source = FakeSource()

        make_pipeline(
            source,
            partitions=["75", "69", "13"],
            inter_call_delay=0.5,
            sleep=sleeps.append,
        ).run()

        assert sleeps == [0.5, 0.5]

    def test_upsert_failure_isolated(self, make_pipeline, test_db):
        source = FakeSource({("75", 2023): [raw("A"), raw("BAD"), raw("C")]})

        summary = make_pipeline(source, repository=FailingRepository({"dvf_BAD"})).run()

        assert summary.fetched == 3
        assert summary.saved == 2
        assert summary.failed == 1
        stored = set(test_db.execute(select(Property.external_id)).scalars())
        assert stored == {"dvf_A", "dvf_C"}

    def test_rerun_is_idempotent_and_refreshes_updated_at(self, make_pipeline, session_factory):
        source = FakeSource({("75", 2023): [raw("A"), raw("B")]})
        clock = FakeClock()
        pipeline = make_pipeline(source, clock=clock)

        pipeline.run()
        with session_factory() as session:
            first = session.execute(select(Property).where(Property.external_id == "dvf_A")).scalar_one()
            first_id, first_updated = first.id, first.updated_at

        pipeline.run()
        with session_factory() as session:
            rows = session.execute(select(Property)).scalars().all()
            second = next(r for r in rows if r.external_id == "dvf_A")

        assert len(rows) == 2
        assert second.id == first_id
        assert second.updated_at > first_updated

    def test_records_ingestion_run(self, make_pipeline, test_db):
        source = FakeSource({("75", 2023): [raw("A")]})

        make_pipeline(source).run()

        run = test_db.execute(select(IngestionRun)).scalar_one()
        assert run.status == "success"
        assert run.records_fetched == 1
        assert run.records_saved == 1
        assert run.completed_at is not None

    def test_demo_source_end_to_end(self, make_pipeline, test_db):
        pipeline = make_pipeline(DemoSource(records_per_partition=10, seed=5), partitions=["75", "69"])

        summary = pipeline.run()

        assert summary.saved == 20
        assert PropertyRepository().count(test_db) == 20

    def test_persists_in_chunks(self, make_pipeline, test_db):
        source = FakeSource({("75", 2023): [raw("A"), raw("B"), raw("BAD"), raw("D"), raw("E")]})

        summary = make_pipeline(
            source, batch_size=2, repository=FailingRepository({"dvf_BAD"})
        ).run()

        assert summary.saved == 4
        assert summary.failed == 1
        assert PropertyRepository().count(test_db) == 4


class TestIngestionSummary:
    """Tests for IngestionSummary"""

    def test_to_dict(self):
        started = datetime(2024, 1, 1, tzinfo=timezone.utc)
        summary = IngestionSummary(fetched=3, saved=2, failed=1, started_at=started)

        data = summary.to_dict()

        assert data["fetched"] == 3
        assert data["started_at"] == started.isoformat()
        assert data["completed_at"] is None

    @pytest.mark.parametrize("kwargs, total, expected", [
        ({"fetched": 2, "saved": 2}, 2, "success"),
        ({"fetched": 2, "saved": 1, "failed": 1}, 2, "partial"),
        ({"fetched": 2, "saved": 2, "partitions_failed": 1}, 2, "partial"),
        ({"partitions_failed": 2}, 2, "failure"),
        ({"fetched": 2, "saved": 0, "failed": 2}, 2, "failure"),
        ({}, 2, "success"),
    ])
    def test_status(self, kwargs, total, expected):
        assert IngestionSummary(**kwargs).status(total) == expected


class TestCli:
    """Tests for the command-line entry point"""

    def test_parse_args(self):
        args = parse_args(["--source", "demo", "--years", "2023", "--departments", "75", "2A"])
        assert args.source == "demo"
        assert args.years == [2023]
        assert args.departments == ["75", "2A"]

    def test_build_pipeline_demo(self):
        pipeline = build_pipeline(source="demo", years=[2021], departments=["33"])

        assert isinstance(pipeline.source_client, DemoSource)
        assert pipeline.normalizer.source == "demo"
        assert pipeline.periods == [2021]
        assert pipeline.inter_call_delay == 0

    def test_build_pipeline_unknown_source(self):
        with pytest.raises(ValueError):
            build_pipeline(source="seloger")


class TestRunLogContext:
    """Log entries emitted during a run carry the run's source and id"""

    def test_context_bound_during_run_and_cleared_after(self, make_pipeline, test_db):
        seen = []

        class RecordingSource(FakeSource):
            def fetch_partition(self, partition_key, period):
                seen.append(structlog.contextvars.get_contextvars())
                return super().fetch_partition(partition_key, period)

        make_pipeline(RecordingSource(), source_name="demo").run()

        run_id = test_db.execute(select(IngestionRun.id)).scalar_one()
        assert seen == [{"ingestion_source": "demo", "ingestion_run_id": run_id}]
        assert "ingestion_source" not in structlog.contextvars.get_contextvars()

    def test_context_cleared_when_run_raises(self, make_pipeline):
        class BrokenSource(FakeSource):
            def fetch_partition(self, partition_key, period):
                raise RuntimeError("unexpected")

        with pytest.raises(RuntimeError):
            make_pipeline(BrokenSource()).run()

        assert "ingestion_source" not in structlog.contextvars.get_contextvars()
