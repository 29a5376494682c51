import unittest
import threading
import tempfile
import shutil

import sigsim
import sigsim.logging


sigsim.logging._configure_stderr_logging()


class SigsimTestCase(unittest.TestCase):
    """Base class for our unit tests."""

    # maxDiff = None  # for debugging

    # some unit tests are modifying globals... so we run sequentially:
    _test_lock = threading.Lock()

    def setUp(self):
        self._test_lock.acquire()
        super().setUp()
        self.sigsim_path = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.sigsim_path)
        super().tearDown()
        self._test_lock.release()
