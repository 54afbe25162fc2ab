# test_log_utils.py -- Tests for log_utils.py
# Copyright (C) 2025 The packscan authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# packscan is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#


"""Tests for packscan.log_utils."""

import logging
import os
import tempfile

from packscan.log_utils import (
    _NULL_HANDLER,
    _PACKSCAN_LOGGER,
    _get_trace_target,
    _NullHandler,
    default_logging_config,
    getLogger,
    remove_null_handler,
)

from . import TestCase


class LogUtilsTests(TestCase):
    """Tests for log_utils."""

    def setUp(self) -> None:
        super().setUp()
        self.original_handlers = list(_PACKSCAN_LOGGER.handlers)
        root_logger = logging.getLogger()
        self.original_root_handlers = list(root_logger.handlers)
        self.original_root_level = root_logger.level

    def tearDown(self) -> None:
        _PACKSCAN_LOGGER.handlers = self.original_handlers
        root_logger = logging.getLogger()
        for handler in root_logger.handlers:
            if handler not in self.original_root_handlers:
                handler.close()
        root_logger.handlers = self.original_root_handlers
        root_logger.setLevel(self.original_root_level)
        super().tearDown()

    def test_null_handler(self) -> None:
        handler = _NullHandler()
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname="test_log_utils.py",
            lineno=1,
            msg="Test message",
            args=(),
            exc_info=None,
        )
        handler.emit(record)

    def test_get_logger(self) -> None:
        logger = getLogger("packscan.test")
        self.assertIsInstance(logger, logging.Logger)
        self.assertEqual(logger.name, "packscan.test")

    def test_module_loggers_are_children(self) -> None:
        self.assertIs(_PACKSCAN_LOGGER, getLogger("packscan.pack").parent)

    def test_remove_null_handler(self) -> None:
        if _NULL_HANDLER not in _PACKSCAN_LOGGER.handlers:
            _PACKSCAN_LOGGER.addHandler(_NULL_HANDLER)
        remove_null_handler()
        self.assertNotIn(_NULL_HANDLER, _PACKSCAN_LOGGER.handlers)

    def test_default_logging_config(self) -> None:
        logging.getLogger().handlers = []
        default_logging_config()
        self.assertNotIn(_NULL_HANDLER, _PACKSCAN_LOGGER.handlers)
        root_logger = logging.getLogger()
        self.assertTrue(root_logger.handlers)
        self.assertEqual(logging.INFO, root_logger.level)

    def test_default_logging_config_with_trace(self) -> None:
        logging.getLogger().handlers = []
        self.overrideEnv("GIT_TRACE", "1")
        default_logging_config()
        self.assertEqual(logging.DEBUG, logging.getLogger().level)

    def test_get_trace_target_disabled(self) -> None:
        self.assertIsNone(_get_trace_target())
        for value in ("", "0", "false", "FALSE"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertIsNone(_get_trace_target())

    def test_get_trace_target_stderr(self) -> None:
        for value in ("1", "2", "true", "TRUE"):
            self.overrideEnv("GIT_TRACE", value)
            self.assertEqual(_get_trace_target(), 2)

    def test_get_trace_target_file_descriptor(self) -> None:
        for fd in range(3, 10):
            self.overrideEnv("GIT_TRACE", str(fd))
            self.assertEqual(_get_trace_target(), fd)

        self.overrideEnv("GIT_TRACE", "10")
        self.assertIsNone(_get_trace_target())

    def test_get_trace_target_relative_path(self) -> None:
        self.overrideEnv("GIT_TRACE", "relative/trace.log")
        self.assertIsNone(_get_trace_target())

    def test_get_trace_target_file(self) -> None:
        with tempfile.NamedTemporaryFile(mode="w", delete=False) as f:
            trace_file = f.name
        self.addCleanup(os.unlink, trace_file)
        self.overrideEnv("GIT_TRACE", trace_file)
        self.assertEqual(trace_file, _get_trace_target())

    def test_trace_to_directory(self) -> None:
        logging.getLogger().handlers = []
        with tempfile.TemporaryDirectory() as tmpdir:
            self.overrideEnv("GIT_TRACE", tmpdir)
            default_logging_config()
            logger = getLogger("packscan.test")
            logger.debug("traced message")
            for handler in logging.getLogger().handlers:
                handler.flush()
                handler.close()
            logging.getLogger().handlers = []
            trace_path = os.path.join(tmpdir, f"trace.{os.getpid()}")
            with open(trace_path) as f:
                self.assertIn("traced message", f.read())
