# utils.py -- Test utilities for packscan
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


"""Utility functions common to packscan tests."""

from io import BytesIO

from packscan.client import Endpoint, UploadPackResponse, UploadPackSession
from packscan.pack import OFS_DELTA, REF_DELTA, SHA1Writer, write_pack_header, write_pack_object


def build_pack(f, objects_spec):
    """Write test pack data from a concise spec.

    :param f: A file-like object to write the pack to.
    :param objects_spec: A list of (type_num, obj). For non-delta types, obj
        is the string of that object's data.
        For delta types, obj is a tuple of (base, data), where base is the
        index in objects_spec of the base object for an ofs-delta, or a
        20 byte binary sha for a ref-delta. data is written as the delta
        payload unchanged; deltas are never resolved while scanning.
    :return: A list of tuples in the order specified by objects_spec:
        (offset, type num, data)
    """
    sf = SHA1Writer(f)
    write_pack_header(sf.write, len(objects_spec))

    offsets = {}
    expected = []
    for i, (type_num, obj) in enumerate(objects_spec):
        offset = sf.offset()
        delta_base = None
        if type_num == OFS_DELTA:
            base_index, data = obj
            delta_base = offset - offsets[base_index]
        elif type_num == REF_DELTA:
            delta_base, data = obj
        else:
            data = obj
        write_pack_object(sf.write, type_num, data, delta_base)
        offsets[i] = offset
        expected.append((offset, type_num, data))

    sf.write_sha()
    f.seek(0)
    return expected


def pack_bytes(objects_spec):
    """Return the bytes of a pack built with build_pack."""
    f = BytesIO()
    build_pack(f, objects_spec)
    return f.getvalue()


class FakeUploadPackSession(UploadPackSession):
    """Session that serves a canned pack stream without any I/O."""

    def __init__(self, endpoint, data, config=None, error=None):
        super().__init__(endpoint, config=config)
        self.data = data
        self.error = error
        self.requests = []
        self.closed = False
        self.response = None

    def upload_pack(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        stream = BytesIO(self.data)
        self.response = UploadPackResponse(stream.read, stream.close)
        return self.response

    def close(self):
        self.closed = True


def fake_session_factory(data, error=None):
    """Return a session factory for PackFetcher and the sessions it made."""
    sessions = []

    def factory(endpoint: Endpoint, config=None):
        session = FakeUploadPackSession(endpoint, data, config=config, error=error)
        sessions.append(session)
        return session

    return factory, sessions
