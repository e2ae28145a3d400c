import io
import logging
import tempfile
import unittest
import zipfile
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock

from script_collector.collect_scripts import apply_overrides, build_parser, clear_destination, collect, main
from script_collector.config import load_settings
from script_collector.docx_writer import DOCUMENT_PART


def write_files(root: Path, files: dict) -> None:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


class TestCollect(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        write_files(
            self.root,
            {
                "Assets/Scripts/Player.cs": "class Player\n{\n}\n",
                "Assets/Scripts/Editor/PlayerEditor.cs": "class PlayerEditor {}",
                "Assets/Plugins/Lib.cs": "class Lib {}",
            },
        )
        self.logger = logging.getLogger("script_collector.test")

    def tearDown(self):
        self._tmp.cleanup()

    def settings_for(self, *argv):
        args = build_parser().parse_args(list(argv))
        return apply_overrides(load_settings(), args)

    def test_overrides(self):
        settings = self.settings_for(
            "--root", str(self.root / "Assets"),
            "--output-name", "Bundle",
            "--subfolder", "Scripts",
            "--exclude-folder", "Editor",
            "--ext", "cs",
        )
        self.assertEqual(settings.root_folder, (self.root / "Assets").resolve())
        self.assertEqual(settings.destination, (self.root / "Assets" / "Bundle.docx").resolve())
        self.assertFalse(settings.selection.include_all_subfolders)
        self.assertEqual(settings.selection.subfolders, frozenset({"Scripts"}))
        self.assertEqual(settings.selection.excluded_folder_names, frozenset({"Editor"}))

    def test_collect_writes_document(self):
        out_dir = self.root / "out"
        out_dir.mkdir()
        settings = self.settings_for(
            "--root", str(self.root / "Assets"),
            "--output-dir", str(out_dir),
            "--exclude-folder", "Editor",
        )

        with self.assertLogs("script_collector.test", level="INFO") as logs:
            rc = collect(settings, self.logger)

        self.assertEqual(rc, 0)
        self.assertIn("Collected 2 scripts", logs.output[-1])
        with zipfile.ZipFile(out_dir / "ScriptsBundle.docx") as zf:
            document = zf.read(DOCUMENT_PART).decode("utf-8")
        self.assertLess(document.index("Lib.cs"), document.index("Player.cs"))
        self.assertNotIn("PlayerEditor", document)

    def test_existing_destination_is_replaced(self):
        target = self.root / "Assets" / "ScriptsBundle.docx"
        target.write_text("stale", encoding="utf-8")
        settings = self.settings_for("--root", str(self.root / "Assets"))

        self.assertEqual(collect(settings, self.logger), 0)
        self.assertTrue(zipfile.is_zipfile(target))

    def test_empty_selection_is_rejected(self):
        settings = self.settings_for("--root", str(self.root / "Assets"), "--ext", ".shader")

        with self.assertLogs("script_collector.test", level="ERROR") as logs:
            rc = collect(settings, self.logger)

        self.assertEqual(rc, 1)
        self.assertIn("No scripts matched", logs.output[0])
        self.assertFalse((self.root / "Assets" / "ScriptsBundle.docx").exists())

    def test_unencodable_file_keeps_previous_document(self):
        write_files(self.root, {"Assets/Bin.cs": "a\x00b"})
        target = self.root / "Assets" / "ScriptsBundle.docx"
        target.write_bytes(b"previous")
        settings = self.settings_for("--root", str(self.root / "Assets"))

        with self.assertLogs("script_collector.test", level="ERROR") as logs:
            rc = collect(settings, self.logger)

        self.assertEqual(rc, 1)
        self.assertIn("Cannot encode entry 'Bin.cs'", logs.output[0])
        self.assertEqual(target.read_bytes(), b"previous")

    def test_missing_root(self):
        settings = self.settings_for("--root", str(self.root / "nope"))
        with self.assertLogs("script_collector.test", level="ERROR"):
            self.assertEqual(collect(settings, self.logger), 1)

    def test_unwritable_destination(self):
        settings = self.settings_for("--root", str(self.root / "Assets"), "--output-dir", str(self.root / "missing"))

        with self.assertLogs("script_collector.test", level="ERROR") as logs:
            rc = collect(settings, self.logger)

        self.assertEqual(rc, 1)
        self.assertIn("Cannot write", logs.output[0])
        self.assertFalse((self.root / "missing").exists())

    def test_main_rejects_invalid_config_value(self):
        conf = self.root / "collector.conf"
        conf.write_text("RETRY_DELAY_SEC = abc\n", encoding="utf-8")

        with redirect_stderr(io.StringIO()) as err, self.assertRaises(SystemExit) as ctx:
            main(["--config", str(conf)])

        self.assertEqual(ctx.exception.code, 2)
        self.assertIn("invalid config value", err.getvalue())

    def test_main_list(self):
        buf = io.StringIO()
        with redirect_stdout(buf), mock.patch("script_collector.collect_scripts.setup_logging", return_value=self.logger):
            rc = main(["--root", str(self.root / "Assets"), "--list"])

        self.assertEqual(rc, 0)
        out = buf.getvalue()
        self.assertIn("Scripts", out)
        self.assertIn("Scripts/Editor/PlayerEditor.cs", out)
        self.assertIn("Matching files (3)", out)


class TestClearDestination(unittest.TestCase):
    def test_missing_file_is_clear(self):
        with tempfile.TemporaryDirectory() as td:
            self.assertTrue(clear_destination(Path(td) / "x.docx", 0, logging.getLogger("t")))

    def test_locked_file_retried_once(self):
        with tempfile.TemporaryDirectory() as td:
            target = Path(td) / "x.docx"
            target.write_text("old", encoding="utf-8")
            logger = logging.getLogger("t")

            with mock.patch.object(Path, "unlink", side_effect=PermissionError("locked")), mock.patch(
                "script_collector.collect_scripts.time.sleep"
            ) as sleep:
                with self.assertLogs("t", level="WARNING") as logs:
                    self.assertFalse(clear_destination(target, 2.0, logger))

            sleep.assert_called_once_with(2.0)
            self.assertEqual([r.levelname for r in logs.records], ["WARNING", "ERROR"])

    def test_locked_file_released_before_retry(self):
        with tempfile.TemporaryDirectory() as td:
            target = Path(td) / "x.docx"
            target.write_text("old", encoding="utf-8")
            logger = logging.getLogger("t")

            with mock.patch.object(Path, "unlink", side_effect=[PermissionError("locked"), None]) as unlink, mock.patch(
                "script_collector.collect_scripts.time.sleep"
            ) as sleep:
                with self.assertLogs("t", level="WARNING") as logs:
                    self.assertTrue(clear_destination(target, 0.5, logger))

            sleep.assert_called_once_with(0.5)
            self.assertEqual(unlink.call_count, 2)
            self.assertEqual([r.levelname for r in logs.records], ["WARNING"])


if __name__ == "__main__":
    unittest.main()
