# test_request.py -- Tests for negotiation requests
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


"""Tests for packscan.request."""

from packscan.errors import InvalidRequest, MissingCapabilities, NegotiationRejected
from packscan.objects import ObjectIdentifier
from packscan.request import REQUIRED_CAPABILITIES, Capability, FetchRequest

from . import TestCase

ONE = "1" * 40
TWO = "2" * 40
THREE = "3" * 40


class FetchRequestTests(TestCase):
    def test_single_want(self) -> None:
        request = FetchRequest([ONE])
        self.assertEqual(
            [
                b"want " + ONE.encode("ascii") + b" thin-pack ofs-delta\n",
                None,
                b"done\n",
            ],
            list(request.iter_pkt_lines()),
        )

    def test_order_preserved(self) -> None:
        request = FetchRequest([TWO, ONE, TWO], [THREE, ONE])
        self.assertEqual(
            [
                b"want " + TWO.encode("ascii") + b" thin-pack ofs-delta\n",
                b"want " + ONE.encode("ascii") + b"\n",
                b"want " + TWO.encode("ascii") + b"\n",
                None,
                b"have " + THREE.encode("ascii") + b"\n",
                b"have " + ONE.encode("ascii") + b"\n",
                b"done\n",
            ],
            list(request.iter_pkt_lines()),
        )

    def test_serialize(self) -> None:
        request = FetchRequest([ONE], [TWO])
        self.assertEqual(
            b"0046want " + ONE.encode("ascii") + b" thin-pack ofs-delta\n"
            b"0000"
            b"0032have " + TWO.encode("ascii") + b"\n"
            b"0009done\n",
            request.serialize(),
        )

    def test_uppercase_normalized(self) -> None:
        request = FetchRequest(["ABCDEF" + "0" * 34])
        self.assertEqual(
            b"want abcdef" + b"0" * 34 + b" thin-pack ofs-delta\n",
            next(request.iter_pkt_lines()),
        )

    def test_identifiers(self) -> None:
        oid = ObjectIdentifier.from_hex(ONE)
        request = FetchRequest([oid], [TWO.encode("ascii")])
        self.assertEqual([oid], request.wants)
        self.assertEqual([ObjectIdentifier.from_hex(TWO)], request.haves)

    def test_no_wants(self) -> None:
        self.assertRaises(InvalidRequest, FetchRequest, [])
        self.assertRaises(InvalidRequest, FetchRequest, [], [ONE])

    def test_invalid_want(self) -> None:
        with self.assertRaises(InvalidRequest) as cm:
            FetchRequest([ONE, "xyz"])
        self.assertIn("invalid want", str(cm.exception))

    def test_invalid_have(self) -> None:
        with self.assertRaises(InvalidRequest) as cm:
            FetchRequest([ONE], ["1" * 39])
        self.assertIn("invalid have", str(cm.exception))

    def test_string_instead_of_list(self) -> None:
        self.assertRaises(InvalidRequest, FetchRequest, ONE)
        self.assertRaises(InvalidRequest, FetchRequest, [ONE], TWO)

    def test_capabilities(self) -> None:
        self.assertEqual(
            (Capability.THIN_PACK, Capability.OFS_DELTA), REQUIRED_CAPABILITIES
        )
        self.assertEqual(
            {b"thin-pack", b"ofs-delta"}, FetchRequest([ONE]).capability_names()
        )


class CheckServerCapabilitiesTests(TestCase):
    def test_all_present(self) -> None:
        FetchRequest([ONE]).check_server_capabilities(
            [b"multi_ack", b"thin-pack", b"ofs-delta", b"agent=git/2.40.0"]
        )

    def test_missing(self) -> None:
        request = FetchRequest([ONE])
        with self.assertRaises(MissingCapabilities) as cm:
            request.check_server_capabilities([b"thin-pack", b"side-band-64k"])
        self.assertEqual([b"ofs-delta"], cm.exception.capabilities)
        self.assertIsInstance(cm.exception, NegotiationRejected)

    def test_none_advertised(self) -> None:
        with self.assertRaises(MissingCapabilities) as cm:
            FetchRequest([ONE]).check_server_capabilities(None)
        self.assertEqual([b"ofs-delta", b"thin-pack"], cm.exception.capabilities)
