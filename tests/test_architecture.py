import asyncio

from ragsmith.indexing import ArchitectureIndexer
from ragsmith.indexing.architecture import ROOT_FALLBACK_SUMMARY
from ragsmith.utils import normalize_path

from .conftest import StubProvider


def _key(project, rel=""):
    return normalize_path(project / rel) if rel else normalize_path(project)


class TestBuildIndex:
    def test_files_directories_and_root(self, project, cfg):
        provider = StubProvider(text="Handles things.")
        index = asyncio.run(ArchitectureIndexer(project, cfg, provider).build_index())

        expected = {
            _key(project),
            _key(project, "src"),
            _key(project, "pkg"),
            _key(project, "src/util.ts"),
            _key(project, "src/app.ts"),
            _key(project, "pkg/helpers.py"),
            _key(project, "README.md"),
        }
        assert set(index) == expected
        assert all(v == "Handles things." for v in index.values())
        assert (project / ".ragsmith" / "planner_index.json").is_file()
        assert (project / ".ragsmith" / ".indexignore").is_file()

    def test_directories_are_summarized_from_children_and_root_last(self, project, cfg):
        provider = StubProvider(text="Handles things.")
        asyncio.run(ArchitectureIndexer(project, cfg, provider).build_index())

        src_prompt = next(p for p in provider.prompts if 'directory "src"' in p)
        assert "- file util.ts: Handles things." in src_prompt
        assert "- file app.ts: Handles things." in src_prompt
        assert 'project "demo"' in provider.prompts[-1]
        assert "- dir src: Handles things." in provider.prompts[-1]

    def test_fallback_summaries_without_provider(self, project, cfg):
        index = asyncio.run(ArchitectureIndexer(project, cfg).build_index())
        assert index[_key(project)] == ROOT_FALLBACK_SUMMARY
        assert index[_key(project, "src/util.ts")] == "Source file src/util.ts."
        assert index[_key(project, "src")] == "Directory containing app.ts, util.ts."

    def test_timeouts_fall_back(self, project, cfg):
        cfg["planner_index"].update(file_timeout_s=0.01, dir_timeout_s=0.01, root_timeout_s=0.01)
        index = asyncio.run(ArchitectureIndexer(project, cfg, StubProvider(delay=0.2)).build_index())
        assert index[_key(project)] == ROOT_FALLBACK_SUMMARY
        assert index[_key(project, "pkg/helpers.py")] == "Source file pkg/helpers.py."

    def test_index_ignore_excludes_paths(self, project, cfg):
        (project / "generated").mkdir()
        (project / "generated" / "out.ts").write_text("export const x = 1;\n", encoding="utf-8")
        cfg["planner_exclude_globs"] = cfg["planner_exclude_globs"] + ["**/generated/**"]
        index = asyncio.run(ArchitectureIndexer(project, cfg).build_index())
        assert not any("generated" in k for k in index)


class TestIncrementalUpdate:
    def test_only_the_ancestor_chain_is_recomputed(self, project, cfg):
        provider = StubProvider(text="Handles things.")
        indexer = ArchitectureIndexer(project, cfg, provider)
        asyncio.run(indexer.build_index())
        before = len(provider.prompts)

        (project / "src" / "util.ts").write_text("export const y = 2;\n", encoding="utf-8")
        asyncio.run(indexer.update_for_files(["src/util.ts"]))

        fresh = provider.prompts[before:]
        assert len(fresh) == 3
        assert "File: src/util.ts" in fresh[0]
        assert 'directory "src"' in fresh[1]
        assert 'project "demo"' in fresh[2]

    def test_new_file_in_new_directory(self, project, cfg):
        indexer = ArchitectureIndexer(project, cfg)
        asyncio.run(indexer.build_index())
        (project / "lib" / "deep").mkdir(parents=True)
        (project / "lib" / "deep" / "mod.py").write_text("X = 1\n", encoding="utf-8")

        index = asyncio.run(indexer.update_for_files(["lib/deep/mod.py"]))

        assert index[_key(project, "lib/deep/mod.py")] == "Source file lib/deep/mod.py."
        assert _key(project, "lib/deep") in index
        assert _key(project, "lib") in index

    def test_removing_last_file_drops_its_directory(self, project, cfg):
        indexer = ArchitectureIndexer(project, cfg)
        asyncio.run(indexer.build_index())

        asyncio.run(indexer.remove_file("pkg/helpers.py"))
        index = indexer.store.load()

        assert _key(project, "pkg/helpers.py") not in index
        assert _key(project, "pkg") not in index
        assert _key(project, "src") in index

    def test_update_without_index_is_a_no_op(self, project, cfg):
        assert asyncio.run(ArchitectureIndexer(project, cfg).update_for_files(["src/util.ts"])) == {}
