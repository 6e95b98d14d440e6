import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from ragsmith.errors import TimeoutNonFatal
from ragsmith.host import ProgressReporter
from ragsmith.indexing import ProjectIndexer, iter_files
from ragsmith.indexing.base import call_with_timeout, run_pool, run_with_deadline
from ragsmith.storage import make_chunk_store
from ragsmith.utils import normalize_path

from .conftest import StubProvider


class Progress(ProgressReporter):
    def __init__(self):
        self.events = []

    def report(self, message=None, percent=None):
        self.events.append((message, percent))


class TestWorkerPool:
    def test_every_item_is_processed_once(self):
        seen = []

        async def work(item):
            await asyncio.sleep(0)
            seen.append(item)

        asyncio.run(run_pool(list(range(10)), work, concurrency=3))
        assert sorted(seen) == list(range(10))

    def test_timeout_yields_none(self):
        def slow():
            import time
            time.sleep(0.3)
            return "late"

        assert asyncio.run(call_with_timeout(slow, timeout=0.05, label="slow")) is None

    def test_failure_yields_none(self):
        def boom():
            raise RuntimeError("no")

        assert asyncio.run(call_with_timeout(boom, timeout=1.0, label="boom")) is None

    def test_deadline_raises_timeout_non_fatal(self):
        def slow():
            import time
            time.sleep(0.3)
            return "late"

        with pytest.raises(TimeoutNonFatal, match="summary of a.ts timed out"):
            asyncio.run(run_with_deadline(slow, timeout=0.05, label="summary of a.ts"))

    def test_calls_run_on_the_provider_pool(self):
        name = asyncio.run(call_with_timeout(lambda: threading.current_thread().name, timeout=1.0, label="name"))
        assert name.startswith("ragsmith-provider")

    def test_bounded_pool_recovers_after_a_stall(self):
        release = threading.Event()
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            async def scenario():
                stalled = await call_with_timeout(release.wait, 5.0, timeout=0.05, label="stalled", executor=pool)
                queued = await call_with_timeout(lambda: "queued", timeout=0.05, label="queued", executor=pool)
                release.set()
                after = await call_with_timeout(lambda: "ok", timeout=1.0, label="after", executor=pool)
                return stalled, queued, after

            assert asyncio.run(scenario()) == (None, None, "ok")
        finally:
            release.set()
            pool.shutdown(wait=True)


class TestProjectIndexer:
    def test_file_selection(self, project, cfg):
        (project / "node_modules" / "lib").mkdir(parents=True)
        (project / "node_modules" / "lib" / "index.js").write_text("function x() {}\n", encoding="utf-8")
        rels = [p.relative_to(project).as_posix() for p in iter_files(project, cfg)]
        assert rels == ["pkg/helpers.py", "src/app.ts", "src/util.ts"]

    def test_index_workspace_annotates_chunks(self, project, cfg):
        pytest.importorskip("tree_sitter_language_pack")
        provider = StubProvider(text="Adds numbers.")
        indexer = ProjectIndexer(project, cfg, provider)
        progress = Progress()

        result = asyncio.run(indexer.index_workspace(progress=progress))

        assert result.files_indexed == 3
        chunks = make_chunk_store(cfg, project).load_chunks()
        assert len(chunks) == len(result.chunks)
        ids = [c.id for c in chunks]
        assert len(ids) == len(set(ids))
        add = next(c for c in chunks if c.name == "add")
        assert add.summary == "Adds numbers."
        assert add.embedding == [1.0, 0.0, 0.0]
        assert progress.events[-1][1] == 100

    def test_timeouts_leave_fields_unset(self, project, cfg):
        pytest.importorskip("tree_sitter_language_pack")
        cfg["indexing"]["summary_timeout_s"] = 0.01
        cfg["indexing"]["embedding_timeout_s"] = 0.01
        indexer = ProjectIndexer(project, cfg, StubProvider(delay=0.2))

        result = asyncio.run(indexer.index_workspace())

        assert result.chunks
        assert all(c.summary is None and c.embedding is None for c in result.chunks)

    def test_without_provider_chunks_are_plain(self, project, cfg):
        result = asyncio.run(ProjectIndexer(project, cfg).index_workspace())
        assert result.chunks
        assert all(c.summary is None and c.embedding is None for c in result.chunks)

    def test_update_and_remove(self, project, cfg):
        indexer = ProjectIndexer(project, cfg)
        asyncio.run(indexer.index_workspace())
        helpers = normalize_path(project / "pkg" / "helpers.py")

        (project / "pkg" / "helpers.py").write_text("def only():\n    return 1\n", encoding="utf-8")
        fresh = asyncio.run(indexer.update_for_files(["pkg/helpers.py"]))

        assert [c.name for c in fresh] == ["only"]
        names = [c.name for c in indexer.store.load_chunks() if c.file_path == helpers]
        assert names == ["only"]

        assert indexer.remove_file("pkg/helpers.py") == 1
        assert not [c for c in indexer.store.load_chunks() if c.file_path == helpers]

    def test_update_drops_deleted_files(self, project, cfg):
        indexer = ProjectIndexer(project, cfg)
        asyncio.run(indexer.index_workspace())
        (project / "pkg" / "helpers.py").unlink()

        asyncio.run(indexer.update_for_files([str(project / "pkg" / "helpers.py")]))

        assert all(not c.file_path.endswith("helpers.py") for c in indexer.store.load_chunks())

    def test_update_without_store_is_a_no_op(self, project, cfg):
        indexer = ProjectIndexer(project, cfg)
        assert asyncio.run(indexer.update_for_files(["src/util.ts"])) == []
        assert not indexer.store.exists()
