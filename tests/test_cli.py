from contextlib import redirect_stderr, redirect_stdout
from io import StringIO
from pathlib import Path
from tempfile import TemporaryDirectory
import json
import logging
import unittest

from panelprobe.app_logging import LOGGER_NAME
from panelprobe.cli import build_parser, load_panels_file, main
from panelprobe.store import Store


class CliTest(unittest.TestCase):
    def test_load_panels_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--config", "panelprobe.yaml", "load-panels", "--file", "panels.yaml"])
        self.assertEqual(args.command, "load-panels")
        self.assertEqual(args.file, "panels.yaml")

    def test_load_panels_file(self) -> None:
        with TemporaryDirectory() as temp_dir:
            panels_path = Path(temp_dir) / "panels.yaml"
            panels_path.write_text(
                """
- storage_name: North bin
  storage_id: 42
  storage_code: NB
  url: "10.0.0.5:8000"
  logins: ["admin/1234"]
  panel_id: 7
""".strip(),
                encoding="utf-8",
            )
            panels = load_panels_file(panels_path)
            self.assertEqual(len(panels), 1)
            self.assertEqual(panels[0].storage_id, "42")
            self.assertEqual(panels[0].logins, ("admin/1234",))

            panels_path.write_text("- storage_name: missing fields\n", encoding="utf-8")
            with self.assertRaises(ValueError):
                load_panels_file(panels_path)

    def test_load_panels_then_status(self) -> None:
        with TemporaryDirectory() as temp_dir:
            root = Path(temp_dir)
            config_path = root / "panelprobe.yaml"
            config_path.write_text("paths:\n  db: panelprobe.db\n  log: panelprobe.log\n", encoding="utf-8")
            panels_path = root / "panels.yaml"
            panels_path.write_text(
                "- {storage_name: A, storage_id: 1, storage_code: A1, url: '10.0.0.1:80', panel_id: 1}\n",
                encoding="utf-8",
            )

            output = StringIO()
            with redirect_stdout(output):
                self.assertEqual(main(["--config", str(config_path), "load-panels", "--file", str(panels_path)]), 0)
                self.assertEqual(main(["--config", str(config_path), "status"]), 0)
            self.assertIn("loaded 1 panels", output.getvalue())
            self.assertIn("Success jobs", output.getvalue())


class RunCommandTest(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config_path = self.root / "panelprobe.yaml"
        self.config_path.write_text("paths:\n  db: panelprobe.db\n  log: panelprobe.log\n", encoding="utf-8")

    def tearDown(self) -> None:
        logger = logging.getLogger(LOGGER_NAME)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        self.temp_dir.cleanup()

    def run_command(self) -> tuple[int, str, str]:
        stdout = StringIO()
        stderr = StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(["--config", str(self.config_path), "run"])
        return code, stdout.getvalue(), stderr.getvalue()

    def test_run_with_no_panels_reports_and_logs(self) -> None:
        code, stdout, _ = self.run_command()
        self.assertEqual(code, 0)
        self.assertIn("Success jobs", stdout)
        self.assertIn("Attempts", stdout)

        log_lines = (self.root / "panelprobe.log").read_text(encoding="utf-8").splitlines()
        events = [json.loads(line) for line in log_lines]
        self.assertIn("scan_started", [event["event"] for event in events])
        finished = [event for event in events if event["event"] == "scan_finished"]
        self.assertEqual(len(finished), 1)
        self.assertEqual(finished[0]["attempted"], 0)

    def test_unreadable_panel_list_exits_non_zero(self) -> None:
        store = Store(self.root / "panelprobe.db")
        store.init_schema()
        store.conn.execute(
            "INSERT INTO storage_monitor_list(panel_id, storage_name, storage_id, storage_code, url, logins_json) "
            "VALUES (1, 'x', '1', 'X', 'h:80', 'not json')"
        )
        store.conn.commit()
        store.close()

        code, stdout, stderr = self.run_command()
        self.assertEqual(code, 1)
        self.assertIn("cannot read panel list", stderr)
        self.assertNotIn("Success jobs", stdout)


if __name__ == "__main__":
    unittest.main()
