"""Tests for logging setup."""

import logging
import os
import shutil
import tempfile
import unittest
from unittest import mock

from TexelBrew.core import setup_logging


class TestSetupLogging(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.logger = logging.getLogger("texel_io")
        self.saved_handlers = list(self.logger.handlers)
        self.saved_level = self.logger.level

    def tearDown(self):
        for handler in self.logger.handlers:
            if handler not in self.saved_handlers:
                self.logger.removeHandler(handler)
                handler.close()
        self.logger.setLevel(self.saved_level)
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_embedded_mode_only_touches_texel_logger(self):
        root = logging.getLogger()
        sentinel = logging.NullHandler()
        root_level = root.level
        with mock.patch.object(root, "handlers", [sentinel]):
            log_file = os.path.join(self.tmpdir, "logs", "texel.log")
            setup_logging("DEBUG", log_file)
            self.assertEqual(root.handlers, [sentinel])
        self.assertEqual(root.level, root_level)
        self.assertEqual(self.logger.level, logging.DEBUG)
        files = [getattr(h, "baseFilename", None) for h in self.logger.handlers]
        self.assertIn(os.path.abspath(log_file), files)

    def test_file_handler_not_duplicated(self):
        root = logging.getLogger()
        with mock.patch.object(root, "handlers", [logging.NullHandler()]):
            log_file = os.path.join(self.tmpdir, "texel.log")
            setup_logging("INFO", log_file)
            setup_logging("INFO", log_file)
        files = [getattr(h, "baseFilename", None) for h in self.logger.handlers]
        self.assertEqual(files.count(os.path.abspath(log_file)), 1)
