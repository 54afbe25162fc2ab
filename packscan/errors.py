# errors.py -- errors for packscan
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

"""packscan-related exception classes."""

from collections.abc import Iterable, Sequence
from typing import Optional


class InvalidRequest(ValueError):
    """A fetch request was rejected before any I/O took place."""


class EndpointError(ValueError):
    """A repository locator could not be parsed or uses an unsupported scheme."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialize an EndpointError.

        Args:
          url: The offending repository locator.
          reason: Why it was rejected.
        """
        self.url = url
        self.reason = reason
        super().__init__(f"invalid repository URL {url!r}: {reason}")


class NotGitRepository(EndpointError):
    """The endpoint does not serve a git repository."""

    def __init__(self, url: str) -> None:
        """Initialize a NotGitRepository exception.

        Args:
          url: URL that was not found on the server.
        """
        super().__init__(url, "no git repository found")


class GitProtocolError(Exception):
    """Git protocol exception."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Initialize a GitProtocolError.

        Args:
          *args: Error message and additional positional arguments.
          **kwargs: Additional keyword arguments.
        """
        Exception.__init__(self, *args, **kwargs)

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances."""
        return isinstance(other, GitProtocolError) and self.args == other.args

    __hash__ = Exception.__hash__


class RemoteConnectionError(GitProtocolError):
    """Network-level failure while talking to the remote."""


class HangupException(RemoteConnectionError):
    """The remote closed the connection unexpectedly."""

    def __init__(self, stderr_lines: Optional[Sequence[bytes]] = None) -> None:
        """Initialize a HangupException.

        Args:
          stderr_lines: Optional list of stderr output lines from the remote server.
        """
        if stderr_lines:
            super().__init__(
                "\n".join(
                    line.decode("utf-8", "surrogateescape") for line in stderr_lines
                )
            )
        else:
            super().__init__("The remote server unexpectedly closed the connection.")
        self.stderr_lines = stderr_lines

    def __eq__(self, other: object) -> bool:
        """Check equality between HangupException instances."""
        return (
            isinstance(other, HangupException)
            and self.stderr_lines == other.stderr_lines
        )

    __hash__ = Exception.__hash__


class HTTPUnauthorized(RemoteConnectionError):
    """Raised when the server requires (proxy) authentication."""

    def __init__(self, www_authenticate: Optional[str], url: str) -> None:
        """Initialize HTTPUnauthorized exception.

        Args:
          www_authenticate: Value of the (Proxy-)Authenticate header
          url: URL that requires authentication
        """
        super().__init__("No valid credentials provided")
        self.www_authenticate = www_authenticate
        self.url = url


class NegotiationRejected(GitProtocolError):
    """The server declined the requested capabilities or wants."""


class MissingCapabilities(NegotiationRejected):
    """The server does not advertise capabilities we require."""

    def __init__(self, capabilities: Iterable[bytes]) -> None:
        """Initialize a MissingCapabilities exception.

        Args:
          capabilities: Required capabilities absent from the advertisement.
        """
        self.capabilities = sorted(capabilities)
        super().__init__(
            "server does not support required capabilities: "
            + ", ".join(c.decode("ascii") for c in self.capabilities)
        )


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class MalformedPack(FileFormatException):
    """The pack stream could not be parsed."""


class TruncatedPack(MalformedPack):
    """The pack stream ended before the declared number of objects was read."""

    def __init__(self, expected: Optional[int] = None, got: int = 0) -> None:
        """Initialize a TruncatedPack exception.

        Args:
          expected: Number of objects declared in the pack header, or None
            if the stream ended inside the header itself.
          got: Number of objects read completely before the stream ended.
        """
        self.expected = expected
        self.got = got
        if expected is None:
            super().__init__("pack stream too short to contain a pack header")
        else:
            super().__init__(f"pack stream ended after {got} of {expected} objects")


class ScanCancelled(Exception):
    """The pack scan was cancelled before reaching the end of the pack."""


class PipeClosed(OSError):
    """Write to a pipe whose read side has been closed."""
