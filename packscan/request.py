# request.py -- Building upload-pack negotiation requests
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

"""Construction of the want/have request sent to git-upload-pack.

The request is a protocol v0 negotiation without multi_ack: every want is
sent, then every have, then ``done``, so the server answers with a single
ACK or NAK followed directly by the pack.
"""

__all__ = [
    "REQUIRED_CAPABILITIES",
    "Capability",
    "FetchRequest",
]

import enum
from collections.abc import Iterable, Iterator
from typing import Optional, Union

from .errors import InvalidRequest, MissingCapabilities
from .objects import ObjectIdentifier
from .protocol import (
    CAPABILITY_OFS_DELTA,
    CAPABILITY_THIN_PACK,
    COMMAND_DONE,
    COMMAND_HAVE,
    COMMAND_WANT,
    extract_capability_names,
    pkt_line,
)

IdentifierLike = Union[ObjectIdentifier, bytes, str]


class Capability(bytes, enum.Enum):
    """Capabilities this client announces to the server."""

    THIN_PACK = CAPABILITY_THIN_PACK
    OFS_DELTA = CAPABILITY_OFS_DELTA


REQUIRED_CAPABILITIES = (Capability.THIN_PACK, Capability.OFS_DELTA)


def _coerce_ids(values: Iterable[IdentifierLike], kind: str) -> list[ObjectIdentifier]:
    ret = []
    for value in values:
        try:
            ret.append(ObjectIdentifier.coerce(value))
        except InvalidRequest as exc:
            raise InvalidRequest(f"invalid {kind}: {exc}") from exc
    return ret


class FetchRequest:
    """An upload-pack request for a set of wanted and held objects.

    Wants and haves keep the order they were given in, duplicates included.
    """

    def __init__(
        self,
        wants: Iterable[IdentifierLike],
        haves: Iterable[IdentifierLike] = (),
        capabilities: Iterable[Capability] = REQUIRED_CAPABILITIES,
    ) -> None:
        """Create a new request.

        Args:
          wants: Objects to fetch, as identifiers or hex strings
          haves: Objects the client already has
          capabilities: Capabilities to announce on the first want line
        Raises:
          InvalidRequest: if there are no wants or an identifier is malformed
        """
        if isinstance(wants, (str, bytes)) or isinstance(haves, (str, bytes)):
            raise InvalidRequest("wants and haves must be sequences of object ids")
        self.wants = _coerce_ids(wants, "want")
        if not self.wants:
            raise InvalidRequest("at least one want is required")
        self.haves = _coerce_ids(haves, "have")
        self.capabilities = [Capability(c) for c in capabilities]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(wants={[str(w) for w in self.wants]!r}, "
            f"haves={[str(h) for h in self.haves]!r})"
        )

    def capability_names(self) -> set[bytes]:
        """Return the names of the capabilities this request announces."""
        return {c.value for c in self.capabilities}

    def check_server_capabilities(
        self, server_capabilities: Optional[Iterable[bytes]]
    ) -> None:
        """Check that the server advertised everything this request needs.

        Raises:
          MissingCapabilities: if a requested capability was not advertised
        """
        advertised = extract_capability_names(server_capabilities or [])
        missing = self.capability_names() - advertised
        if missing:
            raise MissingCapabilities(missing)

    def iter_pkt_lines(self) -> Iterator[Optional[bytes]]:
        """Iterate over the pkt-line payloads of this request.

        None stands for a flush-pkt.
        """
        first = COMMAND_WANT + b" " + self.wants[0].hex()
        if self.capabilities:
            first += b" " + b" ".join(c.value for c in self.capabilities)
        yield first + b"\n"
        for want in self.wants[1:]:
            yield COMMAND_WANT + b" " + want.hex() + b"\n"
        yield None
        for have in self.haves:
            yield COMMAND_HAVE + b" " + have.hex() + b"\n"
        yield COMMAND_DONE + b"\n"

    def serialize(self) -> bytes:
        """Return the request as it goes on the wire."""
        return b"".join(pkt_line(line) for line in self.iter_pkt_lines())
