# objects.py -- Object identifiers and type numbers
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

"""Git object identifiers and object type numbers."""

__all__ = [
    "BLOB",
    "COMMIT",
    "HEXSHA_LENGTH",
    "SHA_LENGTH",
    "TAG",
    "TREE",
    "ObjectIdentifier",
    "hex_to_sha",
    "sha_to_hex",
    "type_num_name",
    "valid_hexsha",
]

import binascii
from typing import Union

from .errors import InvalidRequest

SHA_LENGTH = 20
HEXSHA_LENGTH = 40

COMMIT = 1
TREE = 2
BLOB = 3
TAG = 4

_TYPE_NAMES = {
    COMMIT: "commit",
    TREE: "tree",
    BLOB: "blob",
    TAG: "tag",
    6: "ofs-delta",
    7: "ref-delta",
}


def type_num_name(type_num: int) -> str:
    """Return the name of a pack type number, e.g. ``"blob"`` for 3.

    Raises:
      KeyError: if the type number is not one git uses in packs
    """
    return _TYPE_NAMES[type_num]


def sha_to_hex(sha: bytes) -> bytes:
    """Takes a string and returns the hex of the sha within."""
    hexsha = binascii.hexlify(sha)
    assert len(hexsha) == HEXSHA_LENGTH, f"Incorrect length of sha1 string: {hexsha!r}"
    return hexsha


def hex_to_sha(hex: Union[bytes, str]) -> bytes:
    """Takes a hex sha and returns a binary sha."""
    assert len(hex) == HEXSHA_LENGTH, f"Incorrect length of hexsha: {hex!r}"
    try:
        return binascii.unhexlify(hex)
    except TypeError as exc:
        if not isinstance(hex, bytes):
            raise
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: Union[bytes, str]) -> bool:
    """Check whether a value is a well-formed 40 character hex sha."""
    if len(hex) != HEXSHA_LENGTH:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, ValueError):
        return False
    else:
        return True


class ObjectIdentifier:
    """The 20-byte binary name of a git object.

    Identifiers compare and hash by their binary value, so the hex forms
    ``"ABCD..."`` and ``"abcd..."`` produce equal identifiers.
    """

    __slots__ = ("_sha",)

    def __init__(self, sha: bytes) -> None:
        """Create an identifier from its binary form.

        Args:
          sha: Exactly 20 raw bytes
        Raises:
          InvalidRequest: if ``sha`` is not 20 bytes long
        """
        if not isinstance(sha, bytes) or len(sha) != SHA_LENGTH:
            raise InvalidRequest(f"object id must be {SHA_LENGTH} bytes: {sha!r}")
        self._sha = sha

    @classmethod
    def from_hex(cls, hexsha: Union[bytes, str]) -> "ObjectIdentifier":
        """Parse a case-insensitive 40 character hex identifier.

        Raises:
          InvalidRequest: if the value is not 40 hex digits
        """
        if isinstance(hexsha, str):
            try:
                hexsha = hexsha.encode("ascii")
            except UnicodeEncodeError as exc:
                raise InvalidRequest(f"invalid object id: {hexsha!r}") from exc
        if not isinstance(hexsha, bytes) or not valid_hexsha(hexsha):
            raise InvalidRequest(f"invalid object id: {hexsha!r}")
        return cls(hex_to_sha(hexsha))

    @classmethod
    def coerce(
        cls, value: Union["ObjectIdentifier", bytes, str]
    ) -> "ObjectIdentifier":
        """Return ``value`` as an identifier, parsing hex text if needed.

        Binary values of 20 bytes are taken as raw; anything else is parsed
        as hex.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bytes) and len(value) == SHA_LENGTH:
            return cls(value)
        return cls.from_hex(value)

    @property
    def sha(self) -> bytes:
        """The raw 20-byte value."""
        return self._sha

    def hex(self) -> bytes:
        """Return the lowercase hex form as ascii bytes."""
        return sha_to_hex(self._sha)

    def __bytes__(self) -> bytes:
        return self._sha

    def __str__(self) -> str:
        return self.hex().decode("ascii")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectIdentifier):
            return NotImplemented
        return self._sha == other._sha

    def __hash__(self) -> int:
        return hash(self._sha)
