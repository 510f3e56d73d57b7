"""Tests for the background enrichment pipeline."""

import asyncio

import pytest

from noteforge.models.note import FALLBACK_CATEGORY, AIStatus, ModelTier
from noteforge.services.context import EnrichmentContext
from noteforge.services.embeddings import EmbeddingProvider
from noteforge.services.enrichment import EnrichmentPipeline, RefreshProgress
from noteforge.services.index_sync import IndexSynchronizer
from noteforge.services.note_store import NoteStore
from noteforge.utils.events import EventManager
from noteforge.utils.exceptions import ClassificationFailure, NotFoundError, RefreshInProgressError

from fakes import FakeClassifier, FakeEmbedder, make_note, word_vector


def build_pipeline(classifier=None, embedder=None, notes=()):
    store = NoteStore(notes=notes)
    synchronizer = IndexSynchronizer(store)
    synchronizer.initialize()
    pipeline = EnrichmentPipeline(
        store,
        classifier or FakeClassifier(),
        embedder or FakeEmbedder(),
        EnrichmentContext(),
        synchronizer,
        EventManager(),
    )
    return store, synchronizer, pipeline


@pytest.mark.asyncio
async def test_start_marks_processing_before_remote_calls():
    classifier = FakeClassifier(delay=0.05)
    store, synchronizer, pipeline = build_pipeline(classifier, notes=[make_note("hello world")])
    note = store.snapshot()[0]

    task = pipeline.start(note.id)

    assert store.get(note.id).ai_status == AIStatus.PROCESSING
    assert classifier.calls == []
    assert await task == AIStatus.COMPLETED
    synchronizer.close()


@pytest.mark.asyncio
async def test_successful_enrichment_commits_metadata_and_embedding():
    store, synchronizer, pipeline = build_pipeline()
    note = store.create("rocket engines overview")

    await pipeline.start(note.id)

    enriched = store.get(note.id)
    assert enriched.ai_status == AIStatus.COMPLETED
    assert enriched.category == "Tech"
    assert enriched.headline == "About rocket"
    assert enriched.tags == ["Code"]
    assert enriched.embedding == pytest.approx(word_vector("rocket engines overview"))
    assert pipeline.ai_unavailable is False
    synchronizer.close()


@pytest.mark.asyncio
async def test_classify_and_embed_run_concurrently():
    classifier = FakeClassifier(delay=0.2)
    embedder = FakeEmbedder(delay=0.2)
    store, synchronizer, pipeline = build_pipeline(classifier, embedder)
    note = store.create("timed note")

    loop = asyncio.get_running_loop()
    started = loop.time()
    await pipeline.start(note.id)
    elapsed = loop.time() - started

    assert elapsed < 0.35
    synchronizer.close()


@pytest.mark.asyncio
async def test_classifier_failure_keeps_embedding():
    store, synchronizer, pipeline = build_pipeline(FakeClassifier(fail=True))
    note = store.create("offline note")

    status = await pipeline.start(note.id)

    failed = store.get(note.id)
    assert status == AIStatus.ERROR
    assert failed.ai_status == AIStatus.ERROR
    assert failed.embedding is not None
    assert failed.category == FALLBACK_CATEGORY
    assert failed.headline.startswith("Note ")
    assert pipeline.ai_unavailable is True
    synchronizer.close()


@pytest.mark.asyncio
async def test_failure_keeps_previous_metadata():
    classifier = FakeClassifier(fail=True)
    existing = make_note("known note", category="Lore", headline="Old headline")
    store, synchronizer, pipeline = build_pipeline(classifier, notes=[existing])

    await pipeline.start(existing.id)

    note = store.get(existing.id)
    assert note.ai_status == AIStatus.ERROR
    assert note.category == "Lore"
    assert note.headline == "Old headline"
    synchronizer.close()


@pytest.mark.asyncio
async def test_embedding_unavailable_still_completes():
    store, synchronizer, pipeline = build_pipeline(embedder=FakeEmbedder(available=False))
    note = store.create("no vectors today")

    assert await pipeline.start(note.id) == AIStatus.COMPLETED
    assert store.get(note.id).embedding is None
    synchronizer.close()


@pytest.mark.asyncio
async def test_success_clears_ai_unavailable():
    classifier = FakeClassifier()
    store, synchronizer, pipeline = build_pipeline(classifier)
    note = store.create("retry me")
    classifier.fail_on.add("retry me")
    await pipeline.start(note.id)
    assert pipeline.ai_unavailable is True

    classifier.fail_on.clear()
    await pipeline.start(note.id)

    assert pipeline.ai_unavailable is False
    assert store.get(note.id).ai_status == AIStatus.COMPLETED
    synchronizer.close()


@pytest.mark.asyncio
async def test_note_deleted_during_enrichment_is_not_resurrected():
    store, synchronizer, pipeline = build_pipeline(FakeClassifier(delay=0.05))
    note = store.create("short lived")

    task = pipeline.start(note.id)
    store.delete(note.id)
    await task

    assert note.id not in store
    synchronizer.close()


@pytest.mark.asyncio
async def test_start_missing_note_returns_none():
    store, synchronizer, pipeline = build_pipeline()
    assert pipeline.start("missing") is None
    synchronizer.close()


@pytest.mark.asyncio
async def test_uses_selected_tier_and_rag_context():
    classifier = FakeClassifier()
    store, synchronizer, pipeline = build_pipeline(classifier)
    pipeline.context.set_model_tier(ModelTier.PRO)
    pipeline.context.set_document("lore.txt", b"The ship is called Kestrel.")
    plain = store.create("plain note")
    grounded = store.create("grounded note", rag_enabled=True)

    await pipeline.start(plain.id)
    await pipeline.start(grounded.id)

    assert classifier.tiers == ["pro", "pro"]
    assert classifier.rag_contexts[0] is None
    assert classifier.rag_contexts[1].filename == "lore.txt"
    synchronizer.close()


@pytest.mark.asyncio
async def test_refresh_all_is_sequential_with_progress():
    classifier = FakeClassifier(delay=0.01)
    notes = [make_note(f"note number {i}") for i in range(4)]
    store, synchronizer, pipeline = build_pipeline(classifier, notes=notes)
    progress: list[RefreshProgress] = []

    summary = await pipeline.refresh_all(on_progress=progress.append)

    assert [p.current for p in progress] == [1, 2, 3, 4]
    assert all(p.total == 4 for p in progress)
    assert classifier.max_in_flight == 1
    assert summary.succeeded == 4
    assert summary.failed == 0
    assert all(n.ai_status == AIStatus.COMPLETED for n in store.snapshot())
    assert synchronizer.rebuild_count == 1
    assert synchronizer.index.count() == 4
    assert pipeline.bulk_running is False
    synchronizer.close()


@pytest.mark.asyncio
async def test_refresh_all_continues_past_failures():
    classifier = FakeClassifier()
    notes = [make_note("good one"), make_note("bad one"), make_note("good two")]
    classifier.fail_on.add("bad one")
    store, synchronizer, pipeline = build_pipeline(classifier, notes=notes)

    summary = await pipeline.refresh_all()

    assert summary.succeeded == 2
    assert summary.failed == 1
    assert store.get(notes[1].id).ai_status == AIStatus.ERROR
    synchronizer.close()


@pytest.mark.asyncio
async def test_refresh_all_rejects_concurrent_run():
    classifier = FakeClassifier(delay=0.05)
    store, synchronizer, pipeline = build_pipeline(classifier, notes=[make_note("one")])

    first = asyncio.create_task(pipeline.refresh_all())
    await asyncio.sleep(0)
    with pytest.raises(RefreshInProgressError):
        await pipeline.refresh_all()
    await first
    synchronizer.close()


@pytest.mark.asyncio
async def test_reembed_all_updates_vectors():
    notes = [make_note("first", embedding=None), make_note("second", embedding=None)]
    store, synchronizer, pipeline = build_pipeline(notes=notes)
    progress: list[RefreshProgress] = []

    summary = await pipeline.reembed_all(on_progress=progress.append)

    assert summary.succeeded == 2
    assert [p.kind for p in progress] == ["embeddings", "embeddings"]
    assert all(n.embedding is not None for n in store.snapshot())
    synchronizer.close()


@pytest.mark.asyncio
async def test_reformat_and_undo():
    store, synchronizer, pipeline = build_pipeline()
    note = store.create("messy text")
    await pipeline.start(note.id)

    reformatted = await pipeline.reformat(note.id)
    assert reformatted.content == "Reformatted: messy text"
    assert reformatted.original_content == "messy text"
    assert reformatted.ai_status == AIStatus.PROCESSING
    await pipeline.wait_idle()

    restored = pipeline.undo_reformat(note.id)
    assert restored.content == "messy text"
    assert restored.original_content is None
    await pipeline.wait_idle()
    assert store.get(note.id).ai_status == AIStatus.COMPLETED
    synchronizer.close()


@pytest.mark.asyncio
async def test_reformat_failure_leaves_content():
    store, synchronizer, pipeline = build_pipeline(FakeClassifier(fail=True))
    note = store.create("keep me")

    with pytest.raises(ClassificationFailure):
        await pipeline.reformat(note.id)

    assert store.get(note.id).content == "keep me"
    assert pipeline.ai_unavailable is True
    with pytest.raises(NotFoundError):
        await pipeline.reformat("missing")
    await pipeline.aclose()
    synchronizer.close()


@pytest.mark.asyncio
async def test_last_completion_wins_when_edited_mid_enrichment():
    classifier = FakeClassifier()
    classifier.delays = {"slow draft": 0.1, "fast draft": 0.01}
    store, synchronizer, pipeline = build_pipeline(classifier)
    note = store.create("slow draft")

    superseded = pipeline.start(note.id)
    await asyncio.sleep(0)
    store.update(note.id, {"content": "fast draft"})
    latest = pipeline.start(note.id)

    assert await latest == AIStatus.COMPLETED
    assert store.get(note.id).headline == "About fast"
    assert not superseded.done()

    assert await superseded == AIStatus.COMPLETED
    final = store.get(note.id)
    assert final.ai_status == AIStatus.COMPLETED
    assert final.content == "fast draft"
    assert final.headline == "About slow"
    assert final.embedding == pytest.approx(word_vector("slow draft"))
    synchronizer.close()


@pytest.mark.asyncio
async def test_enrichment_started_during_refresh_waits_its_turn():
    classifier = FakeClassifier(delay=0.05)
    notes = [make_note(f"queued note {i}") for i in range(3)]
    store, synchronizer, pipeline = build_pipeline(classifier, notes=notes)

    refresh = asyncio.create_task(pipeline.refresh_all())
    await asyncio.sleep(0.02)
    late = store.create("late arrival")
    task = pipeline.start(late.id)

    summary = await refresh
    assert await task == AIStatus.COMPLETED

    assert classifier.max_in_flight == 1
    assert summary.succeeded == 3
    assert "late arrival" in classifier.calls
    assert store.get(late.id).ai_status == AIStatus.COMPLETED
    synchronizer.close()


class StaticModel:
    def encode(self, text, normalize_embeddings=False):
        return word_vector(text)


@pytest.mark.asyncio
async def test_reembed_all_retries_failed_model_load():
    attempts = []

    def loader(model_name, device):
        attempts.append(model_name)
        if len(attempts) <= 3:
            raise OSError("model download failed")
        return StaticModel()

    embedder = EmbeddingProvider(max_retries=2, retry_delay=0.01, loader=loader)
    store, synchronizer, pipeline = build_pipeline(
        embedder=embedder, notes=[make_note("orbital mechanics", embedding=None)]
    )
    assert await embedder.initialize() is None
    assert embedder.failed

    summary = await pipeline.reembed_all()

    assert summary.succeeded == 1
    assert len(attempts) == 4
    assert embedder.ready
    assert store.snapshot()[0].embedding == pytest.approx(word_vector("orbital mechanics"))
    synchronizer.close()


@pytest.mark.asyncio
async def test_reembed_all_leaves_loaded_model_alone():
    embedder = FakeEmbedder()
    store, synchronizer, pipeline = build_pipeline(embedder=embedder, notes=[make_note("one")])

    await pipeline.reembed_all()

    assert embedder.resets == 0
    synchronizer.close()
