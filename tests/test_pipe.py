# test_pipe.py -- Tests for the in-process pipe
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


"""Tests for packscan.pipe."""

import threading

from packscan.errors import PipeClosed
from packscan.pipe import pipe

from . import TestCase

TIMEOUT = 10


class Writer(threading.Thread):
    """Writes chunks to a pipe writer from another thread."""

    def __init__(self, writer, chunks, error=None) -> None:
        super().__init__(daemon=True)
        self.writer = writer
        self.chunks = chunks
        self.error = error
        self.written = []
        self.exception = None

    def run(self) -> None:
        try:
            for chunk in self.chunks:
                self.writer.write(chunk)
                self.written.append(chunk)
        except PipeClosed as e:
            self.exception = e
        self.writer.close(self.error)


class PipeTests(TestCase):
    def test_read_all(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abc", b"", b"defg", b"h"])
        t.start()
        self.assertEqual(b"abcdefgh", reader.read())
        t.join(TIMEOUT)
        self.assertFalse(t.is_alive())

    def test_small_reads(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abcdef"])
        t.start()
        self.assertEqual(b"ab", reader.read(2))
        self.assertEqual(b"cde", reader.read(3))
        self.assertEqual(b"f", reader.read(10))
        self.assertEqual(b"", reader.read(10))
        t.join(TIMEOUT)

    def test_chunk_boundaries(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abc", b"def"])
        t.start()
        # A read never spans two chunks
        self.assertEqual(b"abc", reader.read(100))
        self.assertEqual(b"def", reader.read(100))
        self.assertEqual(b"", reader.read(100))
        t.join(TIMEOUT)

    def test_backpressure(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abcdef", b"second"])
        t.start()
        self.assertEqual(b"abc", reader.read(3))
        # The first write cannot complete until its chunk is fully consumed
        t.join(0.1)
        self.assertTrue(t.is_alive())
        self.assertEqual([], t.written)
        self.assertEqual(b"def", reader.read(3))
        self.assertEqual(b"second", reader.read())
        t.join(TIMEOUT)
        self.assertEqual([b"abcdef", b"second"], t.written)

    def test_eof_is_sticky(self) -> None:
        reader, writer = pipe()
        writer.close()
        self.assertEqual(b"", reader.read(10))
        self.assertEqual(b"", reader.read(10))
        self.assertTrue(writer.closed)

    def test_error_after_data(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"data"], error=ValueError("boom"))
        t.start()
        self.assertEqual(b"data", reader.read(4))
        self.assertRaisesRegex(ValueError, "boom", reader.read, 4)
        self.assertRaises(ValueError, reader.read, 4)
        t.join(TIMEOUT)

    def test_first_close_wins(self) -> None:
        reader, writer = pipe()
        writer.close(ValueError("first"))
        writer.close()
        writer.close(KeyError("second"))
        self.assertRaisesRegex(ValueError, "first", reader.read, 1)

    def test_write_after_close(self) -> None:
        reader, writer = pipe()
        writer.close()
        self.assertRaises(ValueError, writer.write, b"x")

    def test_reader_close_unblocks_writer(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abcdef", b"more"])
        t.start()
        self.assertEqual(b"ab", reader.read(2))
        reader.close()
        t.join(TIMEOUT)
        self.assertFalse(t.is_alive())
        self.assertIsInstance(t.exception, PipeClosed)
        self.assertEqual([], t.written)

    def test_write_after_reader_close(self) -> None:
        reader, writer = pipe()
        reader.close()
        self.assertRaises(PipeClosed, writer.write, b"x")
        self.assertIsInstance(PipeClosed(), OSError)

    def test_read_after_reader_close(self) -> None:
        reader, writer = pipe()
        reader.close()
        self.assertTrue(reader.closed)
        self.assertRaises(ValueError, reader.read, 1)

    def test_readinto(self) -> None:
        reader, writer = pipe()
        t = Writer(writer, [b"abcdef"])
        t.start()
        buf = bytearray(4)
        self.assertEqual(4, reader.readinto(buf))
        self.assertEqual(b"abcd", bytes(buf))
        self.assertEqual(2, reader.readinto(buf))
        self.assertEqual(b"ef", bytes(buf[:2]))
        self.assertEqual(0, reader.readinto(buf))
        t.join(TIMEOUT)

    def test_readable(self) -> None:
        reader, writer = pipe()
        self.assertTrue(reader.readable())
        self.assertFalse(reader.writable())
        writer.close()
