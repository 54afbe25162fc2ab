# protocol.py -- Shared parts of the git protocols
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

"""Generic functions for talking the git smart server protocol."""

__all__ = [
    "CAPABILITY_OFS_DELTA",
    "CAPABILITY_THIN_PACK",
    "COMMAND_DONE",
    "COMMAND_HAVE",
    "COMMAND_WANT",
    "MAX_PKT_LINE_PAYLOAD",
    "Protocol",
    "extract_capabilities",
    "extract_capability_names",
    "parse_capability",
    "pkt_line",
]

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Optional

from .errors import GitProtocolError, HangupException, RemoteConnectionError

logger = logging.getLogger(__name__)

CAPABILITY_THIN_PACK = b"thin-pack"
CAPABILITY_OFS_DELTA = b"ofs-delta"

COMMAND_WANT = b"want"
COMMAND_HAVE = b"have"
COMMAND_DONE = b"done"

# A pkt-line is at most 65520 bytes including its 4 byte length prefix.
MAX_PKT_LINE_PAYLOAD = 65516

FLUSH_PKT = b"0000"


def pkt_line(data: Optional[bytes]) -> bytes:
    """Wrap data in a pkt-line.

    Args:
      data: The data to wrap, as a str or None.
    Returns: The data prefixed with its length in pkt-line format; if data was
        None, returns the flush-pkt ('0000').
    """
    if data is None:
        return FLUSH_PKT
    if len(data) > MAX_PKT_LINE_PAYLOAD:
        raise ValueError(f"pkt-line payload of {len(data)} bytes is too long")
    return f"{len(data) + 4:04x}".encode("ascii") + data


def parse_capability(capability: bytes) -> tuple[bytes, Optional[bytes]]:
    """Split a capability into its name and optional value."""
    parts = capability.split(b"=", 1)
    if len(parts) == 1:
        return (parts[0], None)
    return (parts[0], parts[1])


def extract_capability_names(capabilities: Iterable[bytes]) -> set[bytes]:
    """Return the names of a set of capabilities, dropping their values."""
    return {parse_capability(c)[0] for c in capabilities}


def extract_capabilities(text: bytes) -> tuple[bytes, list[bytes]]:
    """Extract a capabilities list from a string, if present.

    Args:
      text: String to extract from
    Returns: Tuple with text with capabilities removed and list of capabilities
    """
    if b"\0" not in text:
        return text, []
    text, capabilities = text.rstrip().split(b"\0")
    return (text, capabilities.strip().split(b" "))


class Protocol:
    """Class for interacting with a remote git process over the wire.

    Parts of the git wire protocol use 'pkt-lines' to communicate. A pkt-line
    consists of the length of the line as a 4-byte hex string, followed by the
    payload data. The length includes the 4-byte header. The special line
    '0000' indicates the end of a section of input and is called a 'flush-pkt'.

    For details on the pkt-line format, see the cgit distribution:
        Documentation/technical/protocol-common.txt
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        write: Optional[Callable[[bytes], object]],
        close: Optional[Callable[[], None]] = None,
    ) -> None:
        """Initialize Protocol.

        Args:
          read: Function to read bytes from the transport
          write: Function to write bytes to the transport
          close: Optional function to close the transport
        """
        self.read = read
        self.write = write
        self._close = close

    def close(self) -> None:
        """Close the underlying transport if a close function was provided."""
        if self._close:
            self._close()

    def read_pkt_line(self) -> Optional[bytes]:
        """Reads a pkt-line from the remote git process.

        Returns: The next string from the stream, without the length prefix, or
            None for a flush-pkt ('0000').
        """
        try:
            sizestr = self.read(4)
            if not sizestr:
                raise HangupException()
            try:
                size = int(sizestr, 16)
            except ValueError as exc:
                raise GitProtocolError(
                    f"invalid pkt-line length prefix {sizestr!r}"
                ) from exc
            if size == 0:
                logger.debug("git< 0000")
                return None
            if size < 4:
                raise GitProtocolError(f"invalid pkt-line length {size:04x}")
            pkt_contents = self.read(size - 4)
        except ConnectionResetError as exc:
            raise HangupException() from exc
        except OSError as exc:
            raise RemoteConnectionError(str(exc)) from exc
        if len(pkt_contents) + 4 != size:
            raise HangupException()
        logger.debug("git< %r", pkt_contents)
        return pkt_contents

    def read_pkt_seq(self) -> Iterator[bytes]:
        """Read a sequence of pkt-lines from the remote git process.

        Returns: Yields each line of data up to but not including the next
            flush-pkt.
        """
        pkt = self.read_pkt_line()
        while pkt:
            yield pkt
            pkt = self.read_pkt_line()

    def write_pkt_line(self, line: Optional[bytes]) -> None:
        """Sends a pkt-line to the remote git process.

        Args:
          line: A string containing the data to send, without the length
            prefix.
        """
        assert self.write is not None
        try:
            data = pkt_line(line)
            self.write(data)
        except OSError as exc:
            raise RemoteConnectionError(str(exc)) from exc
        logger.debug("git> %r", line if line is not None else FLUSH_PKT)
