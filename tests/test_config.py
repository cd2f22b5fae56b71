import logging
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from mapping2tiny.config.env import get_converter_config, get_service_config
from mapping2tiny.logger import get_logger, initialize_logger


class TestConfig(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            cfg = get_converter_config()
            svc = get_service_config()
        self.assertEqual((cfg.source_namespace, cfg.target_namespace), ("source", "target"))
        self.assertEqual(cfg.output_format, "tiny2")
        self.assertEqual(cfg.workers, 1)
        self.assertEqual(svc.jobs_root.name, "conversion_jobs")
        self.assertIsNone(svc.api_key)

    def test_environment_overrides(self):
        env = {
            "M2T_SOURCE_NAMESPACE": "official",
            "M2T_TARGET_NAMESPACE": "named",
            "M2T_WORKERS": "0",
            "M2T_JOB_WORKERS": "4",
            "M2T_API_KEY": "k",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = get_converter_config()
            svc = get_service_config()
        self.assertEqual((cfg.source_namespace, cfg.target_namespace), ("official", "named"))
        self.assertEqual(cfg.workers, 1)
        self.assertEqual(svc.job_workers, 4)
        self.assertEqual(svc.api_key, "k")


class TestLogger(unittest.TestCase):
    def tearDown(self):
        logger = get_logger()
        for h in logger.handlers:
            h.close()
        logger.handlers[:] = [logging.NullHandler()]
        logger.propagate = True

    def test_file_handler(self):
        with tempfile.TemporaryDirectory() as d:
            log_file = Path(d) / "logs" / "m2t.log"
            initialize_logger("WARNING", log_file)
            get_logger("test").debug("written to the file only")
            for h in get_logger().handlers:
                h.flush()
            self.assertIn("written to the file only", log_file.read_text(encoding="utf-8"))
            for h in get_logger().handlers:
                h.close()

    def test_child_loggers(self):
        self.assertEqual(get_logger("formats").name, "mapping2tiny.formats")
        self.assertEqual(get_logger().name, "mapping2tiny")

    def test_import_attaches_no_handlers(self):
        code = (
            "import logging, mapping2tiny.cli, mapping2tiny.conversion; "
            "mapping2tiny.conversion.engine.log.warning('quiet'); "
            "print([type(h).__name__ for h in logging.getLogger('mapping2tiny').handlers])"
        )
        proc = subprocess.run([sys.executable, "-c", code], capture_output=True, text=True, check=True,
                              cwd=Path(__file__).resolve().parents[1])
        self.assertEqual(proc.stdout.strip(), "['NullHandler']")
        self.assertEqual(proc.stderr, "")


if __name__ == "__main__":
    unittest.main()
