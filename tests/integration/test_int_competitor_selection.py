# tests/integration/test_int_competitor_selection.py — v1
"""Integration: a five-step competitor-selection pipeline instrumented end to end.

Runs the same pipeline against an embedded MemoryStore, an SQLite file and
the HTTP API, then checks what the persisted evidence can explain afterwards.
"""

from __future__ import annotations

import random

import pytest

from xraytrace.capture.strategy import CaptureStrategy
from xraytrace.core.models import CandidateInput, StepTypes
from xraytrace.sdk.xray import XRay
from xraytrace.store.sqlite_store import SqliteStore

PRODUCTS = [
    {"id": f"B0{i:02d}", "title": f"Laptop Stand {i}", "price": 15 + i * 3, "rating": 3.0 + (i % 5) * 0.4, "reviews": 50 * i}
    for i in range(1, 31)
]


def _score(p: dict) -> float:
    return p["rating"] * 0.6 + (p["reviews"] / 1000) * 0.4


async def run_pipeline(xray: XRay, products: list[dict] = PRODUCTS) -> dict:
    """Keyword generation, search, filtering, ranking and selection."""
    run = await xray.begin("competitor-selection", input={"asin": "B000", "title": "Laptop Stand"})

    step = await xray.open_step(StepTypes.KEYWORD_GENERATION, input={"title": "Laptop Stand"})
    keywords = ["laptop stand", "adjustable laptop stand"]
    await xray.close_step(step.id, output={"keywords": keywords}, reasoning="title n-grams")

    search = await xray.open_step(StepTypes.SEARCH, input={"keywords": keywords})
    await xray.record_candidates(
        search.id,
        [CandidateInput(candidate_id=p["id"], data=p, score=p["rating"]) for p in products],
        {p["id"] for p in products},
    )
    await xray.close_step(search.id, output={"count": len(products)})

    filtering = await xray.open_step(
        StepTypes.FILTERING, config={"max_price": 60, "min_rating": 3.5},
    )
    by_price = [p for p in products if p["price"] <= 60]
    kept = [p for p in by_price if p["rating"] >= 3.5]
    await xray.record_filter(
        filtering.id, "price-range", config={"max": 60},
        candidates_affected=len(products), candidates_rejected=len(products) - len(by_price),
    )
    await xray.record_filter(
        filtering.id, "min-rating", config={"min": 3.5},
        candidates_affected=len(by_price), candidates_rejected=len(by_price) - len(kept),
    )
    await xray.record_candidates(
        filtering.id,
        [CandidateInput(candidate_id=p["id"], data=p, score=p["rating"]) for p in products],
        {p["id"] for p in kept},
    )
    await xray.close_step(filtering.id, output={"count": len(kept)})

    ranking = await xray.open_step(StepTypes.RANKING, reasoning="rating and review volume")
    ranked = sorted(kept, key=_score, reverse=True)
    await xray.record_candidates(
        ranking.id,
        [CandidateInput(candidate_id=p["id"], data=p, score=_score(p)) for p in ranked],
        {p["id"] for p in ranked},
    )
    await xray.close_step(ranking.id, output={"ranked": [p["id"] for p in ranked]})

    selection = await xray.open_step(StepTypes.SELECTION)
    best = ranked[0]
    await xray.close_step(selection.id, output={"selected": best["id"]})

    await xray.end(output={"competitor": best["id"]})
    return {"run_id": run.id, "filtering_id": filtering.id, "kept": kept, "best": best}


async def _check_evidence(store, result: dict) -> None:
    detail = await store.get_run(result["run_id"])
    assert detail.status == "completed"
    assert detail.output == {"competitor": result["best"]["id"]}
    assert [s.step_index for s in detail.steps] == [0, 1, 2, 3, 4]
    assert [s.step_type for s in detail.steps] == [
        "keyword-generation", "search", "filtering", "ranking", "selection",
    ]
    assert all(s.status == "completed" for s in detail.steps)

    filtering = next(s for s in detail.steps if s.step_type == "filtering")
    assert filtering.input_count == len(PRODUCTS)
    assert filtering.output_count == len(result["kept"])
    assert [f.filter_type for f in filtering.filters] == ["price-range", "min-rating"]
    accepted = {c.candidate_id for c in filtering.candidates if c.status == "accepted"}
    assert accepted == {p["id"] for p in result["kept"]}
    assert all(c.reason == "Filtered out" for c in filtering.candidates if c.status == "rejected")

    ranking = next(s for s in detail.steps if s.step_type == "ranking")
    assert ranking.candidates[0].candidate_id == result["best"]["id"]

    high = await store.query_high_elimination(0.9)
    assert [s.id for s in high] == [result["filtering_id"]]
    assert await store.query_high_elimination(0.01) == []

    assert len(await store.query_by_type("ranking")) == 1


class TestEmbedded:
    @pytest.mark.asyncio
    async def test_memory_store(self, backing_store):
        xray = XRay(backing_store, strategy=CaptureStrategy(rng=random.Random(1)))
        result = await run_pipeline(xray)
        await _check_evidence(backing_store, result)

    @pytest.mark.asyncio
    async def test_sqlite_store(self, tmp_path):
        store = SqliteStore(db_path=tmp_path / "xray.db")
        result = await run_pipeline(XRay(store))
        await _check_evidence(store, result)
        await store.close()


class TestOverHttp:
    @pytest.mark.asyncio
    async def test_remote_engine(self, remote_xray, backing_store):
        result = await run_pipeline(remote_xray)
        await _check_evidence(backing_store, result)
        await _check_evidence(remote_xray.store, result)

    @pytest.mark.asyncio
    async def test_repeated_runs_are_comparable(self, remote_xray, backing_store):
        await run_pipeline(remote_xray)
        await run_pipeline(remote_xray, PRODUCTS[:10])
        runs = await backing_store.list_runs(pipeline_id="competitor-selection")
        assert len(runs) == 2
        assert len(await remote_xray.store.query_by_type("filtering")) == 2
