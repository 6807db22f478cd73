import logging
import os
import shutil
import tempfile
import unittest

from bruno_catalog.logger import LOGGER_NAME, setup_logger


class TestSetupLogger(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.logger = logging.getLogger(LOGGER_NAME)
        self.saved = self.logger.handlers[:]
        self.logger.handlers = []

    def tearDown(self):
        for handler in self.logger.handlers:
            handler.close()
        self.logger.handlers = self.saved
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_failures_go_to_separate_file(self):
        logger = setup_logger(self.tmp, "info")
        logger.info("progress line")
        logger.error("item failed")
        for handler in logger.handlers:
            handler.flush()

        with open(os.path.join(self.tmp, "catalog.log")) as f:
            everything = f.read()
        with open(os.path.join(self.tmp, "failures.log")) as f:
            failures = f.read()
        self.assertIn("progress line", everything)
        self.assertIn("item failed", failures)
        self.assertNotIn("progress line", failures)

    def test_handlers_are_added_once(self):
        setup_logger(self.tmp)
        count = len(self.logger.handlers)
        setup_logger(self.tmp, logging.DEBUG)
        self.assertEqual(len(self.logger.handlers), count)
        self.assertEqual(self.logger.level, logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
