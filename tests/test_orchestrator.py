"""Analysis orchestrator tests driven by a scripted oracle."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest
from conftest import FakeOracle, RecordingSleep

from iconic.classification import (
    AnalysisInProgressError,
    AnalysisOrchestrator,
    AnalysisState,
    MissingCredentialError,
    RuleMemory,
)
from iconic.config.models import AnalysisSettings
from iconic.ingestion import Bundle, BundleStatus
from iconic.library import BundleCollection

CATEGORIES = ["Synth", "Bass", "Mastering"]


def _store(*names: str, **tags: List[str]) -> BundleCollection:
    bundles = []
    for name in names:
        bundle_tags = tags.get(name.replace(" ", "_").replace("-", "_"), [])
        bundles.append(
            Bundle(
                id=f"{name}.fst",
                name=name,
                filename=f"{name}.fst",
                path=f"{name}.fst",
                tags=bundle_tags,
                category=bundle_tags[0] if bundle_tags else None,
            )
        )
    return BundleCollection(bundles)


def _settings(batch_size: int = 2) -> AnalysisSettings:
    return AnalysisSettings(batch_size=batch_size, cooldown_seconds=1.0, cooldown_tick_seconds=0.1)


def _orchestrator(
    oracle: Optional[FakeOracle],
    *,
    memory: Optional[RuleMemory] = None,
    sleep=None,
    statuses: Optional[list] = None,
    batch_size: int = 2,
) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(
        oracle,
        memory or RuleMemory(),
        settings=_settings(batch_size),
        sleep=sleep or RecordingSleep(),
        on_status=statuses.append if statuses is not None else None,
    )


def test_strong_rules_bypass_the_oracle() -> None:
    memory = RuleMemory()
    memory.record_correction("Serum", ["Synth", "Bass"])
    memory.record_correction("Serum", ["Synth", "Bass"])
    memory.record_correction("Vital", ["Bass"])
    oracle = FakeOracle({"Vital": ["Synth"]})
    store = _store("Serum", "Vital", "Pro-Q 3", Pro_Q_3=["Mastering"])

    report = asyncio.run(_orchestrator(oracle, memory=memory).run(store, CATEGORIES))

    serum = store.get("Serum.fst")
    assert serum.tags == ["Synth", "Bass"]
    assert serum.category == "Synth"
    assert serum.status is BundleStatus.CATEGORIZED
    # A weak rule does not bypass the oracle; tagged bundles are not resubmitted.
    assert [call["names"] for call in oracle.calls] == [["Vital"]]
    assert store.get("Vital.fst").tags == ["Synth"]
    assert store.get("Pro-Q 3.fst").tags == ["Mastering"]
    assert (report.targets, report.memory_hits, report.categorized) == (3, 1, 1)


def test_unresolved_bundles_are_retried_then_reset() -> None:
    oracle = FakeOracle({"A": ["Synth"]}, relaxed_answers={"B": ["bass"], "C": []})
    sleep = RecordingSleep()
    statuses: list = []
    store = _store("A", "B", "C")
    orchestrator = _orchestrator(oracle, sleep=sleep, statuses=statuses)

    report = asyncio.run(orchestrator.run(store, CATEGORIES, multi_tag=False))

    assert [(call["names"], call["relaxed"]) for call in oracle.calls] == [
        (["A", "B"], False),
        (["C"], False),
        (["B", "C"], True),
    ]
    assert all(call["multi_tag"] is False for call in oracle.calls)
    assert store.get("A.fst").status is BundleStatus.CATEGORIZED
    # The fake returns raw tags; validation happens in the real backend.
    assert store.get("B.fst").tags == ["bass"]
    reset = store.get("C.fst")
    assert (reset.status, reset.tags, reset.category) == (BundleStatus.PENDING, [], None)
    assert (report.categorized, report.retried, report.reset, report.errors) == (2, 2, 1, 0)

    assert statuses == [
        "Processing 2 of 3",
        "Cooldown (1s)",
        "Processing 3 of 3",
        "Retry Cooldown (1s)",
        "Retrying...",
        None,
    ]
    # Two cooldowns of ten 100 ms ticks each.
    assert sleep.delays == [pytest.approx(0.1)] * 20
    assert orchestrator.state is AnalysisState.IDLE
    assert orchestrator.status_text is None


def test_failed_batch_marks_error_without_retry() -> None:
    oracle = FakeOracle({"C": ["Synth"]}, fail_batches=[0])
    store = _store("A", "B", "C")

    report = asyncio.run(_orchestrator(oracle).run(store, CATEGORIES))

    assert store.get("A.fst").status is BundleStatus.ERROR
    assert store.get("B.fst").status is BundleStatus.ERROR
    assert store.get("C.fst").status is BundleStatus.CATEGORIZED
    assert report.errors == 2
    assert report.retried == 0
    assert len(oracle.calls) == 2


def test_selection_limits_targets_and_skips_duplicates() -> None:
    oracle = FakeOracle({"A": ["Synth"], "B": ["Bass"]})
    store = _store("A", "B", "C")
    store.replace([store.get("B.fst").evolve(is_duplicate=True)])

    report = asyncio.run(
        _orchestrator(oracle).run(store, CATEGORIES, selection=["A.fst", "B.fst"])
    )

    assert report.targets == 2
    assert [call["names"] for call in oracle.calls] == [["A"]]
    assert store.get("C.fst").status is BundleStatus.PENDING


def test_stop_discards_late_results_and_releases_bundles() -> None:
    store = _store("A", "B", "C")
    holder: dict = {}
    oracle = FakeOracle({"A": ["Synth"], "B": ["Synth"]}, on_call=lambda index: holder["o"].stop())
    orchestrator = _orchestrator(oracle)
    holder["o"] = orchestrator

    report = asyncio.run(orchestrator.run(store, CATEGORIES))

    assert report.cancelled
    assert len(oracle.calls) == 1
    assert all(bundle.status is BundleStatus.PENDING for bundle in store)
    assert all(not bundle.tags for bundle in store)
    assert orchestrator.state is AnalysisState.IDLE


def test_stop_during_cooldown_keeps_finished_batches() -> None:
    store = _store("A", "B", "C")
    holder: dict = {}

    def on_status(text):
        if text and text.startswith("Cooldown"):
            holder["o"].stop()

    oracle = FakeOracle({"A": ["Synth"], "B": ["Bass"], "C": ["Synth"]})
    orchestrator = AnalysisOrchestrator(
        oracle, RuleMemory(), settings=_settings(), sleep=RecordingSleep(), on_status=on_status
    )
    holder["o"] = orchestrator

    report = asyncio.run(orchestrator.run(store, CATEGORIES))

    assert report.cancelled
    assert store.get("A.fst").tags == ["Synth"]
    assert store.get("B.fst").tags == ["Bass"]
    assert store.get("C.fst").status is BundleStatus.PENDING
    assert len(oracle.calls) == 1


def test_run_requires_an_oracle() -> None:
    with pytest.raises(MissingCredentialError):
        asyncio.run(_orchestrator(None).run(_store("A"), CATEGORIES))


class _GatedOracle:
    def __init__(self) -> None:
        self.gate = asyncio.Event()

    async def categorize(self, names, categories, *, multi_tag, relaxed):
        await self.gate.wait()
        return {name: ["Synth"] for name in names}


def test_concurrent_runs_are_rejected() -> None:
    async def scenario():
        oracle = _GatedOracle()
        orchestrator = AnalysisOrchestrator(oracle, RuleMemory(), settings=_settings())
        store = _store("A")
        task = asyncio.create_task(orchestrator.run(store, CATEGORIES))
        await asyncio.sleep(0)
        assert orchestrator.state is AnalysisState.RUNNING
        assert store.get("A.fst").status is BundleStatus.ANALYZING
        with pytest.raises(AnalysisInProgressError):
            await orchestrator.run(store, CATEGORIES)
        oracle.gate.set()
        return await task

    report = asyncio.run(scenario())

    assert report.categorized == 1
