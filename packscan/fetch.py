# fetch.py -- Fetch a pack and stream its commits and blobs
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


"""Fetch a pack from a remote repository and stream selected payloads.

:func:`scan_packfile` validates its arguments, then returns a
:class:`PackfileReader` right away while a background thread negotiates the
pack and scans it. The reader yields the raw payload bytes of every commit
and blob, concatenated in pack order, with no separators. Any failure in the
background thread is raised from the reader once the data produced before it
has been read.
"""

__all__ = [
    "PackFetcher",
    "PackfileReader",
    "scan_packfile",
]

import io
import threading
from collections.abc import Callable, Iterable
from typing import Optional

from .client import Endpoint, UploadPackSession, get_session, parse_endpoint
from .config import Config
from .errors import PipeClosed, ScanCancelled
from .log_utils import getLogger
from .objects import BLOB, COMMIT
from .pack import PackStreamScanner, ScanOutcome
from .pipe import PipeReader, PipeWriter, pipe
from .request import FetchRequest, IdentifierLike

logger = getLogger(__name__)

SessionFactory = Callable[..., UploadPackSession]


class PackfileReader(io.RawIOBase):
    """File-like reader over the payloads produced by a fetch.

    Closing the reader cancels the fetch: the background thread stops at
    the next object boundary and releases its connection.
    """

    def __init__(
        self,
        reader: PipeReader,
        cancel: threading.Event,
        thread: threading.Thread,
    ) -> None:
        super().__init__()
        self._reader = reader
        self._cancel = cancel
        self._thread = thread

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:  # type: ignore[override]
        self._checkClosed()  # type: ignore[attr-defined]
        return self._reader.readinto(b)

    def close(self) -> None:
        if not self.closed:
            self._cancel.set()
            self._reader.close()
        super().close()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the background thread to finish.

        Returns: True if it finished within ``timeout``
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()


class PackFetcher:
    """Fetch the pack for a set of wants and stream its commits and blobs."""

    def __init__(
        self,
        repo_url: str,
        wants: Iterable[IdentifierLike],
        haves: Iterable[IdentifierLike] = (),
        config: Optional[Config] = None,
        session_factory: Optional[SessionFactory] = None,
        object_types: Iterable[int] = (COMMIT, BLOB),
    ) -> None:
        """Create a fetcher; nothing is sent until :meth:`fetch` is called.

        Args:
          repo_url: http, https, ssh or git+ssh URL of the repository
          wants: Object ids to fetch, as hex strings or ObjectIdentifiers
          haves: Object ids the caller already has
          config: Git configuration for the transport
          session_factory: Called with the parsed Endpoint and ``config=``
            to open an UploadPackSession; defaults to get_session
          object_types: Pack type numbers whose payloads are streamed
        Raises:
          EndpointError: if the URL is malformed or unsupported
          InvalidRequest: if there are no wants or an id is malformed
        """
        self.endpoint: Endpoint = parse_endpoint(repo_url)
        self.request = FetchRequest(wants, haves)
        self.config = config
        self.session_factory: SessionFactory = session_factory or get_session
        self.object_types = tuple(object_types)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.endpoint.url()!r}, {self.request!r})"

    def fetch(self, cancel: Optional[threading.Event] = None) -> PackfileReader:
        """Start fetching and return a reader for the payload stream.

        Args:
          cancel: Event that stops the scan at the next object boundary
            once set; the reader then raises ScanCancelled
        """
        if cancel is None:
            cancel = threading.Event()
        reader, writer = pipe()
        thread = threading.Thread(
            target=self._produce,
            args=(writer, cancel),
            name=f"packscan-fetch-{self.endpoint.host}",
            daemon=True,
        )
        packfile = PackfileReader(reader, cancel, thread)
        thread.start()
        return packfile

    def _produce(self, writer: PipeWriter, cancel: threading.Event) -> None:
        url = self.endpoint.url()
        if cancel.is_set():
            writer.close(ScanCancelled(f"fetch from {url} cancelled before it started"))
            return
        logger.debug("fetching %r", self)

        def sink(type_num: int, payload: bytes) -> None:
            writer.write(payload)

        try:
            with self.session_factory(self.endpoint, config=self.config) as session:
                with session.upload_pack(self.request) as response:
                    scanner = PackStreamScanner(
                        response.read, object_types=self.object_types, cancel=cancel
                    )
                    outcome = scanner.scan(sink)
        except PipeClosed:
            logger.debug("reader closed, abandoning fetch from %s", url)
            writer.close()
            return
        except Exception as exc:
            logger.warning("failed to fetch pack from %s: %s", url, exc)
            writer.close(exc)
            return

        if outcome is ScanOutcome.ABORTED:
            logger.info(
                "scan of pack from %s cancelled after %d objects",
                url,
                scanner.objects_read,
            )
            writer.close(
                ScanCancelled(
                    f"scan cancelled after {scanner.objects_read} objects"
                )
            )
        else:
            logger.debug(
                "finished scanning %d objects from %s", scanner.objects_read, url
            )
            writer.close()


def scan_packfile(
    repo_url: str,
    wants: Iterable[IdentifierLike],
    haves: Iterable[IdentifierLike] = (),
    cancel: Optional[threading.Event] = None,
    **kwargs,
) -> PackfileReader:
    """Fetch the pack for ``wants`` and stream its commit and blob payloads.

    Keyword arguments are passed on to :class:`PackFetcher`.

    Raises:
      EndpointError: if the URL is malformed or unsupported
      InvalidRequest: if there are no wants or an id is malformed
    """
    return PackFetcher(repo_url, wants, haves, **kwargs).fetch(cancel)
