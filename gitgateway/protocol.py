# protocol.py -- Shared parts of the git smart-HTTP protocol
# Copyright (C) 2026 The gitgateway developers
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# gitgateway is dual-licensed under the Apache License, Version 2.0 and the GNU
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

"""Packet-line framing and service names for the git smart protocol."""

__all__ = [
    "FLUSH_PKT",
    "MAX_PKT_PAYLOAD",
    "PayloadTooLarge",
    "Protocol",
    "Service",
    "pkt_line",
    "service_announcement",
]

import enum
import socket
from collections.abc import Callable, Iterator
from typing import Optional

from .errors import GitProtocolError, HangupException

FLUSH_PKT = b"0000"

# The length prefix covers itself and has to fit in four hex digits.
MAX_PKT_PAYLOAD = 0xFFFF - 4


class PayloadTooLarge(GitProtocolError):
    """A packet-line payload does not fit the 4-hex-digit length prefix."""

    def __init__(self, length: int) -> None:
        """Initialize a PayloadTooLarge exception.

        Args:
            length: Length of the rejected payload in bytes.
        """
        self.length = length
        super().__init__(
            f"Packet payload of {length} bytes exceeds the maximum of "
            f"{MAX_PKT_PAYLOAD} bytes"
        )


class Service(enum.Enum):
    """The negotiation roles a backend process can play."""

    UPLOAD_PACK = "git-upload-pack"
    RECEIVE_PACK = "git-receive-pack"

    @property
    def command(self) -> str:
        """Git subcommand implementing this service, e.g. ``upload-pack``."""
        return self.value[len("git-") :]

    @property
    def advertisement_content_type(self) -> str:
        return f"application/x-{self.value}-advertisement"

    @property
    def result_content_type(self) -> str:
        return f"application/x-{self.value}-result"

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["Service"]:
        """Look up a service by its wire name, returning None if unknown."""
        for service in cls:
            if service.value == name:
                return service
        return None


def pkt_line(data: Optional[bytes]) -> bytes:
    """Wrap data in a pkt-line.

    Args:
      data: The data to wrap, as a bytes object, or None for a flush-pkt.
    Returns: The data prefixed with its length in pkt-line format; if data was
        None, returns the flush-pkt ('0000').
    Raises:
      PayloadTooLarge: if data is longer than MAX_PKT_PAYLOAD bytes
    """
    if data is None:
        return FLUSH_PKT
    if len(data) > MAX_PKT_PAYLOAD:
        raise PayloadTooLarge(len(data))
    return ("%04x" % (len(data) + 4)).encode("ascii") + data


def service_announcement(service: Service) -> bytes:
    """Return the header preceding a smart ref advertisement.

    This is the ``# service=<name>`` pkt-line followed by a flush-pkt.
    """
    return pkt_line(b"# service=" + service.value.encode("ascii") + b"\n") + FLUSH_PKT


class Protocol:
    """Reads and writes pkt-lines over a pair of read/write callables.

    The gateway only ever emits pkt-lines; reading is used to inspect
    backend output and in tests.
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        write: Optional[Callable[[bytes], object]],
    ) -> None:
        """Initialize a Protocol.

        Args:
          read: Callable returning up to the requested number of bytes.
          write: Callable accepting bytes to send, or None if write-only
            use is not needed.
        """
        self.read = read
        self.write = write

    def read_pkt_line(self) -> Optional[bytes]:
        """Read a pkt-line.

        Returns: The payload of the next pkt-line, or None for a flush-pkt.
        Raises:
          HangupException: if the stream ended before a length was read
          GitProtocolError: if the length prefix is malformed or the
            stream ended inside a packet
        """
        try:
            sizestr = self.read(4)
        except socket.error as e:
            raise GitProtocolError(e) from e
        if not sizestr:
            raise HangupException()
        if len(sizestr) != 4:
            raise GitProtocolError(f"Truncated pkt-line length {sizestr!r}")
        try:
            size = int(sizestr, 16)
        except ValueError as e:
            raise GitProtocolError(f"Invalid pkt-line length {sizestr!r}") from e
        if size == 0:
            return None
        if size < 4:
            raise GitProtocolError(f"Invalid pkt-line length {sizestr!r}")
        try:
            pkt_contents = self.read(size - 4)
        except socket.error as e:
            raise GitProtocolError(e) from e
        if len(pkt_contents) + 4 != size:
            raise GitProtocolError(
                f"Length of pkt read {len(pkt_contents) + 4:04x} does not match "
                f"length prefix {size:04x}"
            )
        return pkt_contents

    def read_pkt_seq(self) -> Iterator[bytes]:
        """Read a sequence of pkt-lines up to the next flush-pkt.

        Returns: Yields each line of data up to but not including the next
            flush-pkt.
        """
        pkt = self.read_pkt_line()
        while pkt:
            yield pkt
            pkt = self.read_pkt_line()

    def write_pkt_line(self, line: Optional[bytes]) -> None:
        """Send a pkt-line.

        Args:
          line: A bytes object containing the data to send, or None to send a
            flush-pkt.
        """
        if self.write is None:
            raise GitProtocolError("Protocol is read-only")
        try:
            self.write(pkt_line(line))
        except socket.error as e:
            raise GitProtocolError(e) from e
