"""
Tests for page citations and figure thumbnails.
"""

from __future__ import annotations

import asyncio
import time
from typing import Iterable, List

import pytest

from manualqa.generation import CitationBuilder, is_relevant_figure
from manualqa.generation.citations import group_pages, thumbnail_title
from manualqa.rag import ChunkRecord, FigureRecord, InMemoryChunkStore, InMemoryFigureStore


def _chunk(cid: str, manual_id: str, start: int, end: int = None) -> ChunkRecord:
    return ChunkRecord(
        id=cid,
        manual_id=manual_id,
        version="v1",
        page_start=start,
        page_end=end if end is not None else start,
        content=f"text {cid}",
    )


def _figure(fid: str, manual_id: str, page: int, **kwargs) -> FigureRecord:
    kwargs.setdefault("storage_url", f"https://cdn.example/{fid}.png")
    kwargs.setdefault("figure_type", "diagram")
    return FigureRecord(id=fid, manual_id=manual_id, page_number=page, **kwargs)


class _CountingChunkStore(InMemoryChunkStore):
    def __post_init__(self) -> None:
        super().__post_init__()
        self.calls = 0

    async def get_chunks(self, ids):
        self.calls += 1
        return await super().get_chunks(ids)


class _FailingFigureStore:
    """Fails for one manual, delegates for the rest."""

    def __init__(self, inner: InMemoryFigureStore, failing_manual: str):
        self.inner = inner
        self.failing_manual = failing_manual

    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        if manual_id == self.failing_manual:
            raise ConnectionError("figure store down")
        return await self.inner.figures_on_pages(manual_id, pages)


class _LeakyFigureStore:
    """Ignores the manual filter, as a buggy backend might."""

    def __init__(self, figures: List[FigureRecord]):
        self.figures = figures

    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        wanted = set(pages)
        return [f for f in self.figures if f.page_number in wanted]


class _SlowFigureStore:
    async def figures_on_pages(self, manual_id: str, pages: Iterable[int]) -> List[FigureRecord]:
        await asyncio.sleep(1)
        return []


def test_relevance_filter():
    assert is_relevant_figure(_figure("a", "m", 1))
    assert not is_relevant_figure(_figure("b", "m", 1, storage_url=None))
    assert not is_relevant_figure(_figure("c", "m", 1, figure_type=None))
    assert is_relevant_figure(_figure("d", "m", 1, figure_type=None, caption_text="Battery location on board"))
    assert not is_relevant_figure(_figure("e", "m", 1, figure_type=None, caption_text="Fig 3"))
    assert is_relevant_figure(_figure("f", "m", 1, figure_type=None, ocr_text="CR2032 BT1"))
    assert is_relevant_figure(_figure("g", "m", 1, figure_type=None, keywords=["battery"]))
    assert is_relevant_figure(_figure("h", "m", 1, figure_type=None, kind="Wiring harness"))


def test_thumbnail_title_prefers_kind_then_caption():
    assert thumbnail_title(_figure("a", "m1", 12)) == "Diagram · m1 p.12"
    fig = _figure("b", "m1", 3, figure_type=None, caption_text="A" * 80)
    assert thumbnail_title(fig) == f"{'A' * 50} · m1 p.3"
    assert thumbnail_title(_figure("c", "m1", 4, figure_type=None)) == "Figure · m1 p.4"


def test_group_pages_expands_ranges_and_drops_corrupt_pages():
    grouped = group_pages([_chunk("a", "m1", 3, 4), _chunk("b", "m1", 2000), _chunk("c", "m2", 1)])
    assert grouped == {"m1": {3, 4}, "m2": {1}}


@pytest.mark.anyio
async def test_empty_input_makes_no_store_calls():
    chunks = _CountingChunkStore([])
    builder = CitationBuilder(chunks, InMemoryFigureStore([]))
    bundle = await builder.build([])
    assert bundle.citations == []
    assert bundle.thumbnails == []
    assert chunks.calls == 0


@pytest.mark.anyio
async def test_battery_page_citation_and_thumbnail():
    chunks = InMemoryChunkStore([_chunk("c12", "board-a", 12), _chunk("c13", "board-a", 13)])
    figures = InMemoryFigureStore(
        [
            _figure("fig-battery", "board-a", 12, caption_text="CR2032 battery holder BT1"),
            _figure("fig-other", "board-a", 30),
        ]
    )
    bundle = await CitationBuilder(chunks, figures).build(["c12"])
    assert bundle.citations == ["board-a:p12"]
    assert len(bundle.thumbnails) == 1
    thumb = bundle.thumbnails[0]
    assert thumb.page_id == "board-a:p12"
    assert thumb.manual_id == "board-a"
    assert thumb.url == "https://cdn.example/fig-battery.png"


@pytest.mark.anyio
async def test_figures_never_cross_manuals_with_same_page_numbers():
    chunks = InMemoryChunkStore([_chunk("a5", "manual-a", 5), _chunk("b7", "manual-b", 7)])
    figures = _LeakyFigureStore(
        [
            _figure("a-fig", "manual-a", 5),
            _figure("b-fig-on-5", "manual-b", 5),
            _figure("b-fig", "manual-b", 7),
            _figure("a-fig-on-7", "manual-a", 7),
        ]
    )
    bundle = await CitationBuilder(chunks, figures).build(["a5", "b7"])
    assert bundle.citations == ["manual-a:p5", "manual-b:p7"]
    pairs = sorted((t.manual_id, t.page_id) for t in bundle.thumbnails)
    assert pairs == [("manual-a", "manual-a:p5"), ("manual-b", "manual-b:p7")]


@pytest.mark.anyio
async def test_failing_manual_keeps_other_manuals_and_all_citations():
    chunks = InMemoryChunkStore([_chunk("a1", "manual-a", 1), _chunk("b2", "manual-b", 2)])
    inner = InMemoryFigureStore([_figure("a-fig", "manual-a", 1), _figure("b-fig", "manual-b", 2)])
    builder = CitationBuilder(chunks, _FailingFigureStore(inner, failing_manual="manual-a"))
    bundle = await builder.build(["a1", "b2"])
    assert bundle.citations == ["manual-a:p1", "manual-b:p2"]
    assert [t.manual_id for t in bundle.thumbnails] == ["manual-b"]
    assert bundle.failed_manuals == ["manual-a"]


@pytest.mark.anyio
async def test_slow_figure_lookup_times_out_as_failed_manual():
    chunks = InMemoryChunkStore([_chunk("a1", "manual-a", 1)])
    builder = CitationBuilder(chunks, _SlowFigureStore(), lookup_timeout_s=0.01)
    bundle = await builder.build(["a1"])
    assert bundle.citations == ["manual-a:p1"]
    assert bundle.thumbnails == []
    assert bundle.failed_manuals == ["manual-a"]


class _HangingChunkStore(InMemoryChunkStore):
    async def get_chunks(self, ids):
        await asyncio.sleep(30)
        return []


@pytest.mark.anyio
async def test_slow_chunk_lookup_times_out():
    builder = CitationBuilder(_HangingChunkStore([]), InMemoryFigureStore([]), lookup_timeout_s=0.05)
    started = time.perf_counter()
    with pytest.raises(asyncio.TimeoutError):
        await builder.build(["a1"])
    assert time.perf_counter() - started < 5


@pytest.mark.anyio
async def test_thumbnails_deduplicated_and_ordered_by_page():
    chunks = InMemoryChunkStore([_chunk("c", "m1", 3, 4), _chunk("d", "m1", 4)])
    figures = InMemoryFigureStore(
        [_figure("z-late", "m1", 4), _figure("a-early", "m1", 3), _figure("b-same-page", "m1", 4)]
    )
    bundle = await CitationBuilder(chunks, figures).build(["d", "c", "d"])
    assert bundle.citations == ["m1:p3", "m1:p4"]
    assert [t.url.rsplit("/", 1)[-1] for t in bundle.thumbnails] == [
        "a-early.png",
        "b-same-page.png",
        "z-late.png",
    ]
