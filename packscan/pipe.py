# pipe.py -- In-process byte pipe between threads
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


"""A one-chunk byte pipe connecting a producer thread to a reader.

The writer publishes one chunk at a time and blocks until the reader has
consumed all of it, so at most one chunk is ever in flight. Either side can
close: the writer to signal end of stream (optionally with an error the
reader will raise), the reader to tell the writer nobody is listening any
more.
"""

__all__ = [
    "PipeReader",
    "PipeWriter",
    "pipe",
]

import io
import threading
from typing import Optional

from .errors import PipeClosed


class _Pipe:
    """State shared by the two ends of a pipe."""

    def __init__(self) -> None:
        self.cond = threading.Condition()
        self.chunk: Optional[memoryview] = None
        self.pos = 0
        self.writer_closed = False
        self.reader_closed = False
        self.error: Optional[BaseException] = None

    def write(self, data: bytes) -> int:
        if not data:
            return 0
        with self.cond:
            self.cond.wait_for(lambda: self.chunk is None or self.reader_closed)
            if self.reader_closed:
                raise PipeClosed("read side of pipe is closed")
            if self.writer_closed:
                raise ValueError("write to closed pipe")
            chunk = memoryview(bytes(data))
            self.chunk = chunk
            self.pos = 0
            self.cond.notify_all()
            self.cond.wait_for(lambda: self.chunk is not chunk or self.reader_closed)
            if self.chunk is chunk:
                self.chunk = None
                raise PipeClosed("read side of pipe closed before the write completed")
            return len(chunk)

    def close_writer(self, error: Optional[BaseException] = None) -> None:
        with self.cond:
            if self.writer_closed:
                return
            self.writer_closed = True
            self.error = error
            self.cond.notify_all()

    def readinto(self, buffer: memoryview) -> int:
        with self.cond:
            self.cond.wait_for(lambda: self.chunk is not None or self.writer_closed)
            chunk = self.chunk
            if chunk is None:
                if self.error is not None:
                    raise self.error
                return 0
            n = min(len(buffer), len(chunk) - self.pos)
            buffer[:n] = chunk[self.pos : self.pos + n]
            self.pos += n
            if self.pos == len(chunk):
                self.chunk = None
                self.cond.notify_all()
            return n

    def close_reader(self) -> None:
        with self.cond:
            self.reader_closed = True
            self.cond.notify_all()


class PipeReader(io.RawIOBase):
    """Read side of a pipe.

    ``read()`` blocks until the writer publishes data or closes. At end of
    stream it returns ``b""``; if the writer closed with an error, that
    error is raised instead, once everything written before it was read.
    """

    def __init__(self, pipe: _Pipe) -> None:
        super().__init__()
        self._pipe = pipe

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:  # type: ignore[override]
        self._checkClosed()  # type: ignore[attr-defined]
        with memoryview(b) as view, view.cast("B") as target:
            return self._pipe.readinto(target)

    def close(self) -> None:
        """Close the read side; pending and later writes raise PipeClosed."""
        if not self.closed:
            self._pipe.close_reader()
        super().close()


class PipeWriter:
    """Write side of a pipe."""

    def __init__(self, pipe: _Pipe) -> None:
        self._pipe = pipe

    def write(self, data: bytes) -> int:
        """Publish ``data`` and block until the reader consumed all of it.

        Raises:
          PipeClosed: if the reader closed its side
        """
        return self._pipe.write(data)

    def close(self, error: Optional[BaseException] = None) -> None:
        """Signal end of stream, or a failure if ``error`` is given.

        Only the first call has any effect.
        """
        self._pipe.close_writer(error)

    @property
    def closed(self) -> bool:
        return self._pipe.writer_closed


def pipe() -> tuple[PipeReader, PipeWriter]:
    """Create a connected (reader, writer) pair."""
    shared = _Pipe()
    return PipeReader(shared), PipeWriter(shared)
