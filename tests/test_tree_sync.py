import os
import tempfile
import time
import unittest
from pathlib import Path


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _files(root: Path) -> set:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()}


class TestTreeSync(unittest.TestCase):
    def test_mirror_then_idempotent(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "manifest.json", "{}")
            _write(src / "entities" / "cow.json", '{"cow": true}')
            _write(src / "texts" / "en_US.lang", "a=b")

            first = sync_tree(src, dst)
            self.assertEqual(first.copied, 3)
            self.assertEqual(first.failed, 0)
            self.assertEqual(_files(dst), {"manifest.json", "entities/cow.json", "texts/en_US.lang"})
            self.assertEqual((dst / "entities" / "cow.json").read_text(encoding="utf-8"), '{"cow": true}')

            second = sync_tree(src, dst)
            self.assertEqual(second.copied, 0)
            self.assertEqual(second.deleted, 0)
            self.assertEqual(second.skipped, 3)
            self.assertFalse(second.changed)

    def test_deletes_what_source_no_longer_has(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "keep.json", "1")
            _write(dst / "stale.json", "old")
            _write(dst / "old_dir" / "x.json", "old")

            result = sync_tree(src, dst)
            self.assertEqual(_files(dst), {"keep.json"})
            self.assertFalse((dst / "old_dir").exists())
            self.assertEqual(result.deleted, 2)

    def test_exclusions_apply_at_every_level(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "tscripts" / "main.ts", "x")
            _write(src / "nested" / "tscripts" / "deep.ts", "x")
            _write(src / "nested" / "ok.json", "{}")

            sync_tree(src, dst, exclusions={"tscripts"})
            self.assertEqual(_files(dst), {"nested/ok.json"})

    def test_preserves_only_protect_top_level_names(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "manifest.json", "{}")
            (src / "nested").mkdir()
            _write(dst / "scripts" / "main.js", "compiled")
            _write(dst / "nested" / "scripts" / "old.js", "stale")

            sync_tree(src, dst, exclusions={"scripts"}, preserves={"scripts"})
            self.assertTrue((dst / "scripts" / "main.js").is_file())
            self.assertFalse((dst / "nested" / "scripts").exists())

    def test_ignorable_names_are_not_copied(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "main.js", "x")
            _write(src / "main.js.map", "{}")
            _write(src / "tsconfig.packsync.temp.json", "{}")
            _write(src / ".DS_Store", "")

            sync_tree(src, dst)
            self.assertEqual(_files(dst), {"main.js"})

    def test_same_size_newer_source_is_copied(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "a.json", "AAAA")
            _write(dst / "a.json", "BBBB")
            now = time.time()
            os.utime(dst / "a.json", (now - 100, now - 100))
            os.utime(src / "a.json", (now, now))

            result = sync_tree(src, dst)
            self.assertEqual(result.copied, 1)
            self.assertEqual((dst / "a.json").read_text(encoding="utf-8"), "AAAA")

    def test_same_size_older_source_is_left_alone(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "a.json", "AAAA")
            _write(dst / "a.json", "BBBB")
            now = time.time()
            os.utime(src / "a.json", (now - 100, now - 100))
            os.utime(dst / "a.json", (now, now))

            result = sync_tree(src, dst)
            self.assertEqual(result.copied, 0)
            self.assertEqual(result.skipped, 1)
            self.assertEqual((dst / "a.json").read_text(encoding="utf-8"), "BBBB")

    def test_size_difference_wins_over_mtime(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "a.json", "short")
            _write(dst / "a.json", "much longer content")
            now = time.time()
            os.utime(src / "a.json", (now - 100, now - 100))
            os.utime(dst / "a.json", (now, now))

            self.assertEqual(sync_tree(src, dst).copied, 1)
            self.assertEqual((dst / "a.json").read_text(encoding="utf-8"), "short")

    def test_type_changes_are_replaced(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "was_dir", "now a file")
            _write(src / "was_file" / "inner.json", "{}")
            _write(dst / "was_dir" / "child.json", "{}")
            _write(dst / "was_file", "file")

            result = sync_tree(src, dst)
            self.assertEqual(result.failed, 0)
            self.assertTrue((dst / "was_dir").is_file())
            self.assertTrue((dst / "was_file" / "inner.json").is_file())

    @unittest.skipIf(os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0), "needs POSIX permissions")
    def test_one_failing_entry_does_not_abort_the_pass(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "locked.json", "secret")
            _write(src / "fine.json", "ok")
            os.chmod(src / "locked.json", 0)
            try:
                result = sync_tree(src, dst)
            finally:
                os.chmod(src / "locked.json", 0o644)
            self.assertEqual(result.failed, 1)
            self.assertEqual(result.copied, 1)
            self.assertTrue((dst / "fine.json").is_file())

    def test_top_exclusions_skip_only_the_first_level(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "scripts" / "main.js", "own")
            _write(src / "functions" / "scripts" / "tick.json", "{}")

            result = sync_tree(src, dst, top_exclusions={"scripts"})
            self.assertEqual(_files(dst), {"functions/scripts/tick.json"})
            self.assertEqual(result.failed, 0)

    def test_created_and_skipped_entries_are_logged(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "entities" / "cow.json", "{}")

            with self.assertLogs("packsync.sync", level="INFO") as cm:
                sync_tree(src, dst)
            self.assertTrue(any("created" in line and "entities" in line for line in cm.output))

            with self.assertLogs("packsync.sync", level="DEBUG") as cm:
                sync_tree(src, dst)
            self.assertTrue(any("skipped" in line and "cow.json" in line for line in cm.output))

    @unittest.skipIf(os.name == "nt", "directory symlinks need privileges on Windows")
    def test_symlinked_directory_loop_counts_as_one_failure(self) -> None:
        from packsync.kernel.tree_sync import sync_tree

        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "src"
            dst = Path(td) / "dst"
            _write(src / "manifest.json", "{}")
            _write(src / "nested" / "ok.json", "{}")
            os.symlink(src, src / "nested" / "loop", target_is_directory=True)

            result = sync_tree(src, dst)
            self.assertEqual(result.failed, 1)
            self.assertEqual(result.copied, 2)
            self.assertEqual(_files(dst), {"manifest.json", "nested/ok.json"})


if __name__ == "__main__":
    unittest.main()
