import os
import tempfile
import unittest
from pathlib import Path


class TestSettings(unittest.TestCase):
    def _with_home(self, td: str):
        old = os.environ.get("PACKSYNC_HOME")
        os.environ["PACKSYNC_HOME"] = td

        def restore() -> None:
            if old is None:
                os.environ.pop("PACKSYNC_HOME", None)
            else:
                os.environ["PACKSYNC_HOME"] = old

        return restore

    def test_yaml_round_trip(self) -> None:
        from packsync.kernel.settings import load_settings, load_workspace_settings, update_settings

        with tempfile.TemporaryDirectory() as td:
            restore = self._with_home(td)
            try:
                self.assertEqual(load_settings(), {})
                update_settings(workspace_root=Path(td) / "ws", product="PreviewGDK", compiler_command=["tsc", "-p"])
                self.assertTrue((Path(td) / "settings.yaml").is_file())
                self.assertEqual(load_settings()["workspace_root"], str(Path(td) / "ws"))

                s = load_workspace_settings(env={})
                self.assertEqual(s.workspace_root, Path(td) / "ws")
                self.assertEqual(s.projects_dir, Path(td) / "ws" / "projects")
                self.assertEqual(s.effective_libraries_root, Path(td) / "ws" / "libraries")
                self.assertEqual(s.product, "PreviewGDK")
                self.assertEqual(s.compiler_command, ["tsc", "-p"])
                self.assertIsNone(s.deployment_root)

                update_settings(product=None)
                self.assertNotIn("product", load_settings())
            finally:
                restore()

    def test_env_overrides_file(self) -> None:
        from packsync.kernel.settings import load_workspace_settings, update_settings

        with tempfile.TemporaryDirectory() as td:
            restore = self._with_home(td)
            try:
                update_settings(deployment_root="/from/file", compiler_command="npx tsc --pretty false")
                s = load_workspace_settings(
                    env={"PACKSYNC_DEPLOYMENT_ROOT": str(Path(td) / "deploy"), "PACKSYNC_LIBRARIES": str(Path(td) / "libs")}
                )
                self.assertEqual(s.deployment_root, Path(td) / "deploy")
                self.assertEqual(s.effective_libraries_root, Path(td) / "libs")
                self.assertEqual(s.compiler_command, ["npx", "tsc", "--pretty", "false"])
            finally:
                restore()

    def test_broken_file_reads_as_empty(self) -> None:
        from packsync.kernel.settings import load_settings

        with tempfile.TemporaryDirectory() as td:
            restore = self._with_home(td)
            try:
                (Path(td) / "settings.yaml").write_text("- just\n- a list\n", encoding="utf-8")
                self.assertEqual(load_settings(), {})
            finally:
                restore()


class TestDeploymentRoot(unittest.TestCase):
    def test_missing_root_raises_configuration_error(self) -> None:
        from packsync.errors import ConfigurationError
        from packsync.kernel.deployment import resolve_deployment_root
        from packsync.kernel.settings import WorkspaceSettings

        with self.assertRaises(ConfigurationError) as ctx:
            resolve_deployment_root(WorkspaceSettings(), env={})
        self.assertEqual(ctx.exception.code, "configuration")
        self.assertEqual(ctx.exception.to_dict()["code"], "configuration")

    def test_product_default_must_exist(self) -> None:
        from packsync.errors import ConfigurationError
        from packsync.kernel.deployment import deployment_root_candidates, resolve_deployment_root
        from packsync.kernel.settings import WorkspaceSettings

        with tempfile.TemporaryDirectory() as td:
            env = {"LOCALAPPDATA": td}
            settings = WorkspaceSettings(product="BedrockUWP")
            with self.assertRaises(ConfigurationError):
                resolve_deployment_root(settings, env=env)

            expected = deployment_root_candidates(env)["BedrockUWP"]
            self.assertIsNotNone(expected)
            expected.mkdir(parents=True)
            self.assertEqual(resolve_deployment_root(settings, env=env), expected.resolve())
            self.assertIsNone(deployment_root_candidates(env)["BedrockGDK"])

    def test_explicit_and_custom_roots(self) -> None:
        from packsync.kernel.deployment import resolve_deployment_root
        from packsync.kernel.settings import WorkspaceSettings

        with tempfile.TemporaryDirectory() as td:
            explicit = Path(td) / "not-yet-created"
            s = WorkspaceSettings(deployment_root=str(explicit))
            self.assertEqual(resolve_deployment_root(s, env={}), explicit.resolve())

            custom = WorkspaceSettings(product="Custom")
            self.assertEqual(
                resolve_deployment_root(custom, env={"CUSTOM_DEPLOYMENT_PATH": td}), Path(td).resolve()
            )

    def test_clean_removes_both_packs(self) -> None:
        from packsync.kernel.deployment import DeploymentTree, clean_deployment, list_deployed_packs

        with tempfile.TemporaryDirectory() as td:
            d = DeploymentTree(root=Path(td), project_name="demo")
            (d.scripts_dir / "libraries").mkdir(parents=True)
            d.resource_dir.mkdir(parents=True)
            self.assertEqual(list_deployed_packs(Path(td)), {"behavior": ["demo_BP"], "resource": ["demo_RP"]})

            self.assertEqual(clean_deployment(d), [d.behavior_dir, d.resource_dir])
            self.assertFalse(d.behavior_dir.exists())
            self.assertEqual(clean_deployment(d), [])


if __name__ == "__main__":
    unittest.main()
