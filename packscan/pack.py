# pack.py -- Scanning and writing git pack streams
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


"""Scanning git pack streams.

A pack stream is a 12 byte header (``PACK``, version, object count) followed
by that many objects and a 20 byte trailer. Each object starts with a
variable length type/size header; delta objects add a base reference; the
payload follows as a zlib stream whose inflated length equals the size in
the header.

:class:`PackStreamScanner` walks such a stream as it arrives, without
seeking and without holding more than one object in memory, and hands the
payload of the object types it was asked for to a sink. Deltas are never
resolved. The trailer checksum is not verified.

The writing helpers at the end of the module produce packs in the same
format and are mostly useful for building fixtures.
"""

__all__ = [
    "DELTA_TYPES",
    "OFS_DELTA",
    "REF_DELTA",
    "ObjectRecord",
    "PackHeader",
    "PackStreamScanner",
    "SHA1Writer",
    "ScanOutcome",
    "pack_object_header",
    "read_pack_header",
    "take_msb_bytes",
    "unpack_object_header",
    "write_pack_header",
    "write_pack_object",
    "write_pack_objects",
]

import enum
import struct
import zlib
from collections.abc import Callable, Iterable, Sequence
from hashlib import sha1
from io import BytesIO
from os import SEEK_END
from struct import unpack_from
from typing import IO, NamedTuple, Optional, Protocol, Union

from .errors import MalformedPack, TruncatedPack
from .log_utils import getLogger
from .objects import BLOB, COMMIT, SHA_LENGTH, TAG, TREE, type_num_name

logger = getLogger(__name__)

OFS_DELTA = 6
REF_DELTA = 7

DELTA_TYPES = (OFS_DELTA, REF_DELTA)

_VALID_TYPES = frozenset((COMMIT, TREE, BLOB, TAG, OFS_DELTA, REF_DELTA))

_ZLIB_BUFSIZE = 65536

# 4 + 9 * 7 bits covers any 64-bit size.
_MAX_VARINT_BYTES = 10

PACK_HEADER_SIZE = 12


class PackHeader(NamedTuple):
    """The fixed header at the start of a pack stream."""

    version: int
    num_objects: int


class ObjectRecord(NamedTuple):
    """Header information of a single packed object.

    ``delta_base`` is the relative offset of the base for ofs-deltas, the
    20 byte binary name of the base for ref-deltas, and None otherwise.
    """

    offset: int
    type_num: int
    size: int
    delta_base: Union[int, bytes, None]


class ScanOutcome(enum.Enum):
    """How a scan ended."""

    DONE = "done"
    ABORTED = "aborted"


class CancelToken(Protocol):
    """Anything with an ``is_set()`` method, like :class:`threading.Event`."""

    def is_set(self) -> bool: ...


def take_msb_bytes(
    read: Callable[[int], bytes], max_bytes: int = _MAX_VARINT_BYTES
) -> list[int]:
    """Read bytes marked with most significant bit.

    Args:
      read: Read function
      max_bytes: Longest run of bytes accepted
    Returns: List of the bytes read, the last one without the MSB set
    Raises:
      MalformedPack: if the run is longer than ``max_bytes`` or the stream
        ends inside it
    """
    ret: list[int] = []
    while len(ret) == 0 or ret[-1] & 0x80:
        if len(ret) >= max_bytes:
            raise MalformedPack(f"variable length integer longer than {max_bytes} bytes")
        b = read(1)
        if not b:
            raise MalformedPack("unexpected end of variable length integer")
        ret.append(b[0])
    return ret


def read_pack_header(read: Callable[[int], bytes]) -> PackHeader:
    """Read the header of a pack stream.

    Args:
      read: Read function
    Returns: PackHeader with the pack version and number of objects
    Raises:
      TruncatedPack: if fewer than 12 bytes are available
      MalformedPack: if the magic or version is wrong
    """
    header = read(PACK_HEADER_SIZE)
    if len(header) < PACK_HEADER_SIZE:
        raise TruncatedPack()
    if header[:4] != b"PACK":
        raise MalformedPack(f"Invalid pack header {header[:4]!r}")
    (version,) = unpack_from(b">L", header, 4)
    if version not in (2, 3):
        raise MalformedPack(f"Unsupported pack version {version}")
    (num_objects,) = unpack_from(b">L", header, 8)
    return PackHeader(version, num_objects)


def unpack_object_header(
    read_all: Callable[[int], bytes],
) -> tuple[int, int, Union[int, bytes, None]]:
    """Read the header of a packed object.

    Args:
      read_all: Read function that blocks until the number of requested
        bytes are read.
    Returns: Tuple of (type number, inflated size, delta base)
    Raises:
      MalformedPack: for an unknown type number or an over-long varint
    """
    raw = take_msb_bytes(read_all)
    type_num = (raw[0] >> 4) & 0x07
    if type_num not in _VALID_TYPES:
        raise MalformedPack(f"invalid object type {type_num}")
    size = raw[0] & 0x0F
    for i, byte in enumerate(raw[1:]):
        size += (byte & 0x7F) << ((i * 7) + 4)

    delta_base: Union[int, bytes, None]
    if type_num == OFS_DELTA:
        raw = take_msb_bytes(read_all)
        delta_base_offset = raw[0] & 0x7F
        for byte in raw[1:]:
            delta_base_offset += 1
            delta_base_offset <<= 7
            delta_base_offset += byte & 0x7F
        delta_base = delta_base_offset
    elif type_num == REF_DELTA:
        delta_base = read_all(SHA_LENGTH)
        if len(delta_base) != SHA_LENGTH:
            raise MalformedPack("unexpected end of ref-delta base")
    else:
        delta_base = None
    return type_num, size, delta_base


class PackStreamScanner:
    """Scan a pack stream and forward the payloads of selected objects.

    The stream is read through ``read_all`` and ``read_some`` as in a
    ReceivableProtocol: bytes a zlib stream did not use are pushed back into
    an internal read buffer, so the scanner never reads past what it needs
    except for the final buffer of inflate input.
    """

    def __init__(
        self,
        read_all: Callable[[int], bytes],
        read_some: Optional[Callable[[int], bytes]] = None,
        object_types: Iterable[int] = (COMMIT, BLOB),
        cancel: Optional[CancelToken] = None,
        zlib_bufsize: int = _ZLIB_BUFSIZE,
    ) -> None:
        """Initialize the scanner.

        Args:
          read_all: Function to read all requested bytes; may return fewer
            only at end of stream
          read_some: Function to read some bytes (optional)
          object_types: Type numbers whose payload is forwarded
          cancel: Checked before each object; once set, the scan stops
          zlib_bufsize: Buffer size for zlib decompression
        """
        self.read_all = read_all
        if read_some is None:
            self.read_some = read_all
        else:
            self.read_some = read_some
        self.object_types = frozenset(object_types)
        self.cancel = cancel
        self.header: Optional[PackHeader] = None
        self.objects_read = 0
        self._offset = 0
        self._rbuf = BytesIO()
        self._zlib_bufsize = zlib_bufsize

    def _buf_len(self) -> int:
        buf = self._rbuf
        start = buf.tell()
        buf.seek(0, SEEK_END)
        end = buf.tell()
        buf.seek(start)
        return end - start

    @property
    def offset(self) -> int:
        """Return current offset in the stream."""
        return self._offset - self._buf_len()

    def _truncated(self) -> TruncatedPack:
        if self.header is None:
            return TruncatedPack()
        # The object being read when the stream ended does not count.
        return TruncatedPack(self.header.num_objects, max(self.objects_read - 1, 0))

    def read(self, size: int) -> bytes:
        """Read, blocking until size bytes are read.

        Raises:
          TruncatedPack: if the stream ends first
        """
        buf_len = self._buf_len()
        if buf_len >= size:
            return self._rbuf.read(size)
        ret = [self._rbuf.read()]
        self._rbuf = BytesIO()
        missing = size - buf_len
        while missing > 0:
            data = self.read_all(missing)
            if not data:
                raise self._truncated()
            self._offset += len(data)
            ret.append(data)
            missing -= len(data)
        return b"".join(ret)

    def recv(self, size: int) -> bytes:
        """Read up to size bytes, blocking until one byte is read.

        Returns an empty bytestring at end of stream.
        """
        buf_len = self._buf_len()
        if buf_len:
            data = self._rbuf.read(size)
            if size >= buf_len:
                self._rbuf = BytesIO()
            return data
        data = self.read_some(size)
        self._offset += len(data)
        return data

    def _unread(self, data: bytes) -> None:
        buf = BytesIO()
        buf.write(data)
        buf.write(self._rbuf.read())
        buf.seek(0)
        self._rbuf = buf

    def _inflate(self, size: int, keep: bool) -> Optional[bytes]:
        """Inflate one zlib stream that must expand to exactly ``size`` bytes.

        Returns the inflated bytes if ``keep`` is set, else None.
        """
        decomp_obj = zlib.decompressobj()
        decomp_chunks: list[bytes] = []
        decomp_len = 0
        while not decomp_obj.eof:
            add = self.recv(self._zlib_bufsize)
            if not add:
                raise self._truncated()
            try:
                # Output is capped one byte past the declared size, which is
                # enough to detect an oversized object.
                decomp = decomp_obj.decompress(add, size + 1 - decomp_len)
            except zlib.error as exc:
                raise MalformedPack(f"corrupt zlib stream: {exc}") from exc
            decomp_len += len(decomp)
            if decomp_len > size:
                raise MalformedPack(
                    f"object inflates to more than the {size} bytes declared"
                )
            if keep:
                decomp_chunks.append(decomp)
        if decomp_obj.unused_data:
            self._unread(decomp_obj.unused_data)
        if decomp_len != size:
            raise MalformedPack(
                f"object inflated to {decomp_len} bytes, expected {size}"
            )
        if keep:
            return b"".join(decomp_chunks)
        return None

    def _cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()

    def scan(self, sink: Callable[[int, bytes], object]) -> ScanOutcome:
        """Scan the whole pack.

        Args:
          sink: Called with (type number, payload) for every object whose
            type was selected, in pack order
        Returns: ScanOutcome.DONE once every declared object was read, or
            ScanOutcome.ABORTED if the cancel token was set
        Raises:
          TruncatedPack: if the stream ends before the last object
          MalformedPack: if the stream is corrupt
        """
        self.header = read_pack_header(self.read)
        logger.debug(
            "pack version %d with %d objects",
            self.header.version,
            self.header.num_objects,
        )
        for _ in range(self.header.num_objects):
            if self._cancelled():
                logger.debug(
                    "scan cancelled after %d of %d objects",
                    self.objects_read,
                    self.header.num_objects,
                )
                return ScanOutcome.ABORTED
            offset = self.offset
            self.objects_read += 1
            type_num, size, delta_base = unpack_object_header(self.read)
            record = ObjectRecord(offset, type_num, size, delta_base)
            keep = record.type_num in self.object_types
            payload = self._inflate(record.size, keep)
            if payload is None:
                logger.debug(
                    "skipping %s of %d bytes at offset %d",
                    type_num_name(record.type_num),
                    record.size,
                    record.offset,
                )
                continue
            if self._cancelled():
                # Cancelled while this object was being read; drop it.
                logger.debug(
                    "scan cancelled while reading object %d of %d",
                    self.objects_read,
                    self.header.num_objects,
                )
                return ScanOutcome.ABORTED
            sink(record.type_num, payload)
        return ScanOutcome.DONE


class SHA1Writer:
    """Wrapper for file-like object that remembers the SHA1 of its data."""

    def __init__(self, f: IO[bytes]) -> None:
        self.f = f
        self.length = 0
        self.sha1 = sha1(b"")

    def write(self, data: bytes) -> int:
        self.sha1.update(data)
        written = self.f.write(data)
        self.length += written
        return written

    def write_sha(self) -> bytes:
        """Write the SHA1 digest of everything written so far."""
        sha = self.sha1.digest()
        assert len(sha) == 20
        self.f.write(sha)
        self.length += len(sha)
        return sha

    def offset(self) -> int:
        return self.length

    def tell(self) -> int:
        return self.f.tell()


def pack_object_header(
    type_num: int, delta_base: Union[bytes, int, None], size: int
) -> bytearray:
    """Create a pack object header for the given object info.

    Args:
      type_num: Numeric type of the object.
      delta_base: Delta base offset or ref, or None for whole objects.
      size: Uncompressed object size.
    Returns: A header for a packed object.
    """
    header = []
    c = (type_num << 4) | (size & 15)
    size >>= 4
    while size:
        header.append(c | 0x80)
        c = size & 0x7F
        size >>= 7
    header.append(c)
    if type_num == OFS_DELTA:
        assert isinstance(delta_base, int)
        ret = [delta_base & 0x7F]
        delta_base >>= 7
        while delta_base:
            delta_base -= 1
            ret.insert(0, 0x80 | (delta_base & 0x7F))
            delta_base >>= 7
        header.extend(ret)
    elif type_num == REF_DELTA:
        assert isinstance(delta_base, bytes)
        assert len(delta_base) == SHA_LENGTH
        header += delta_base
    return bytearray(header)


def write_pack_header(write: Callable[[bytes], object], num_objects: int) -> None:
    """Write a pack header for the given number of objects."""
    write(b"PACK")
    write(struct.pack(b">L", 2))
    write(struct.pack(b">L", num_objects))


def write_pack_object(
    write: Callable[[bytes], object],
    type_num: int,
    data: bytes,
    delta_base: Union[bytes, int, None] = None,
    compression_level: int = -1,
) -> None:
    """Write a single packed object.

    For delta types ``data`` is written as-is; it is not checked to be a
    valid delta against ``delta_base``.
    """
    write(bytes(pack_object_header(type_num, delta_base, len(data))))
    compressor = zlib.compressobj(level=compression_level)
    write(compressor.compress(data))
    write(compressor.flush())


def write_pack_objects(
    f: IO[bytes],
    objects: Sequence[tuple[int, bytes, Union[bytes, int, None]]],
    compression_level: int = -1,
) -> tuple[list[int], bytes]:
    """Write a complete pack, trailer included.

    Args:
      f: File-like object to write to
      objects: Sequence of (type number, data, delta base) tuples
      compression_level: the zlib compression level to use
    Returns: Tuple of (offset of each object, pack checksum)
    """
    sf = SHA1Writer(f)
    write_pack_header(sf.write, len(objects))
    offsets = []
    for type_num, data, delta_base in objects:
        offsets.append(sf.offset())
        write_pack_object(
            sf.write, type_num, data, delta_base, compression_level=compression_level
        )
    return offsets, sf.write_sha()
