# config.py -- Transport settings in git-config form
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

"""Transport settings, keyed the way git-config(1) keys them.

The transports read ``http.*`` (optionally scoped to a URL with
``http.<url>.*``) and ``core.sshCommand``. Nothing is read from disk: callers
that want settings build a :class:`ConfigDict` and pass it in explicitly.
"""

__all__ = [
    "Config",
    "ConfigDict",
]

import sys
from collections.abc import Iterator
from typing import Optional, Union

Section = tuple[bytes, ...]
SectionLike = Union[bytes, str, tuple[Union[bytes, str], ...]]
NameLike = Union[bytes, str]
ValueLike = Union[bytes, str]


class Config:
    """Read-only view of transport settings."""

    def get(self, section: SectionLike, name: NameLike) -> bytes:
        """Return the value of a setting.

        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get)

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[bytes]:
        """Return every value of a setting that may be given more than once.

        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get_multivar)

    def get_boolean(
        self, section: SectionLike, name: NameLike, default: Optional[bool] = None
    ) -> Optional[bool]:
        """Return a setting interpreted as a git boolean.

        Args:
          section: Section name, or tuple of section and subsection name
          name: Name of the setting
          default: Returned if the setting is not present
        Raises:
          ValueError: if the value is not a boolean git understands
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        if value.lower() in (b"true", b"yes", b"on", b"1"):
            return True
        elif value.lower() in (b"false", b"no", b"off", b"0", b""):
            return False
        raise ValueError(f"not a valid boolean string: {value!r}")

    def sections(self) -> Iterator[Section]:
        """Iterate over the section tuples that hold at least one setting."""
        raise NotImplementedError(self.sections)


class ConfigDict(Config):
    """Transport settings held in memory.

    Section and variable names are case-insensitive; subsection names (the
    URL in ``http.<url>.*``) are not. A lookup in a subsection falls back
    to the plain section.
    """

    def __init__(self, encoding: Optional[str] = None) -> None:
        self.encoding = encoding or sys.getdefaultencoding()
        self._values: dict[Section, dict[bytes, list[bytes]]] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._values!r})"

    def _key(self, section: SectionLike, name: NameLike) -> tuple[Section, bytes]:
        if not isinstance(section, tuple):
            section = (section,)
        parts = [
            part if isinstance(part, bytes) else part.encode(self.encoding)
            for part in section
        ]
        if not isinstance(name, bytes):
            name = name.encode(self.encoding)
        return (parts[0].lower(), *parts[1:]), name.lower()

    def _lookup(self, section: SectionLike, name: NameLike) -> list[bytes]:
        key, name = self._key(section, name)
        if len(key) > 1:
            try:
                return self._values[key][name]
            except KeyError:
                pass
        return self._values[key[:1]][name]

    def get(self, section: SectionLike, name: NameLike) -> bytes:
        """Return a setting; the value set last wins."""
        return self._lookup(section, name)[-1]

    def get_multivar(self, section: SectionLike, name: NameLike) -> Iterator[bytes]:
        return iter(self._lookup(section, name))

    def set(
        self, section: SectionLike, name: NameLike, value: Union[ValueLike, bool]
    ) -> None:
        """Set a setting, replacing any values it already has."""
        key, name = self._key(section, name)
        if isinstance(value, bool):
            value = b"true" if value else b"false"
        if not isinstance(value, bytes):
            value = value.encode(self.encoding)
        self._values.setdefault(key, {})[name] = [value]

    def add(self, section: SectionLike, name: NameLike, value: ValueLike) -> None:
        """Append a value to a setting that may be given more than once."""
        key, name = self._key(section, name)
        if not isinstance(value, bytes):
            value = value.encode(self.encoding)
        self._values.setdefault(key, {}).setdefault(name, []).append(value)

    def sections(self) -> Iterator[Section]:
        return iter(list(self._values))
