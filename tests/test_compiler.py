import json
import sys
import tempfile
import unittest
from pathlib import Path

# Stands in for tsc: checks the generated tsconfig, then fails like a type error would.
_FAKE_TSC = """
import json, sys
cfg = json.load(open(sys.argv[sys.argv.index("--project") + 1], encoding="utf-8"))
print("outDir=" + cfg["compilerOptions"]["outDir"])
print("main.ts(3,7): error TS2322: Type 'string' is not assignable to type 'number'.")
sys.exit(2)
"""


class TestCompiler(unittest.TestCase):
    def test_build_tsconfig_merges_compiler_options(self) -> None:
        from packsync.kernel.compiler import BASE_COMPILER_OPTIONS, build_tsconfig

        doc = build_tsconfig(
            Path("/w/demo/behavior_pack/tscripts"),
            Path("/deploy/demo_BP/scripts"),
            {"compilerOptions": {"baseUrl": "/w/demo", "paths": {"libraries/*": ["../../libraries/*"]}}},
        )
        opts = doc["compilerOptions"]
        self.assertEqual(opts["outDir"], "/deploy/demo_BP/scripts")
        self.assertEqual(opts["baseUrl"], "/w/demo")
        self.assertEqual(opts["target"], BASE_COMPILER_OPTIONS["target"])
        self.assertEqual(doc["include"], ["/w/demo/behavior_pack/tscripts/**/*"])
        self.assertNotIn("baseUrl", BASE_COMPILER_OPTIONS)

    def test_diagnostics_come_back_in_the_result(self) -> None:
        from packsync.kernel.compiler import TEMP_TSCONFIG_NAME, TscCompiler

        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            script = root / "fake_tsc.py"
            script.write_text(_FAKE_TSC, encoding="utf-8")
            source = root / "demo" / "behavior_pack" / "tscripts"
            source.mkdir(parents=True)
            out = root / "deploy" / "scripts"

            compiler = TscCompiler([sys.executable, str(script)], timeout_seconds=60)
            result = compiler.compile(source, out, {"compilerOptions": {"baseUrl": str(root / "demo")}})

            self.assertFalse(result.success)
            self.assertEqual(result.returncode, 2)
            self.assertIn("TS2322", result.diagnostics)
            self.assertIn(f"outDir={out.as_posix()}", result.diagnostics)
            self.assertIn("--project", result.command)
            self.assertTrue(out.is_dir())
            self.assertFalse((root / "demo" / TEMP_TSCONFIG_NAME).exists())

    def test_missing_executable_raises_compile_error(self) -> None:
        from packsync.errors import CompileError
        from packsync.kernel.compiler import TEMP_TSCONFIG_NAME, TscCompiler

        with tempfile.TemporaryDirectory() as td:
            source = Path(td) / "behavior_pack" / "tscripts"
            source.mkdir(parents=True)
            compiler = TscCompiler(["packsync-no-such-compiler-xyz"])
            with self.assertRaises(CompileError) as ctx:
                compiler.compile(source, Path(td) / "out", {})
            self.assertEqual(ctx.exception.code, "compile_failed")
            self.assertFalse((Path(td) / "behavior_pack" / TEMP_TSCONFIG_NAME).exists())
            self.assertEqual(json.loads(json.dumps(ctx.exception.to_dict()))["code"], "compile_failed")


if __name__ == "__main__":
    unittest.main()
