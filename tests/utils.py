# utils.py -- Test utilities for gitgateway
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

"""Utility functions common to gitgateway tests."""

import os
import shutil
import sys
import tempfile

from gitgateway.backend import Backend

# Small Python programs standing in for git, so that the gateway can be tested
# without a git installation.

# Writes the value of GIT_PROTOCOL, or "X" when it is unset.
ADVERTISE_SCRIPT = (
    "import os, sys; "
    "sys.stdout.buffer.write(os.environ.get('GIT_PROTOCOL', 'X').encode())"
)

# Copies its input to its output as it arrives.
ECHO_SCRIPT = (
    "import shutil, sys; shutil.copyfileobj(sys.stdin.buffer, sys.stdout.buffer)"
)

# Reads all of its input before writing any of it back.
ECHO_AFTER_EOF_SCRIPT = (
    "import sys; data = sys.stdin.buffer.read(); sys.stdout.buffer.write(data)"
)

FAIL_SCRIPT = "import sys; sys.stderr.write('fatal: broken\\n'); sys.exit(1)"

# Writes one 200 KB line to stderr, then behaves like ECHO_SCRIPT.
LONG_STDERR_SCRIPT = (
    "import shutil, sys; "
    "sys.stderr.write('w' * 200000 + '\\n'); sys.stderr.flush(); "
    "shutil.copyfileobj(sys.stdin.buffer, sys.stdout.buffer)"
)

SLEEP_SCRIPT = "import time; time.sleep(60)"

# Stands in for "git update-server-info": writes <repo>/info/refs.
UPDATE_SERVER_INFO_SCRIPT = (
    "import os, sys; "
    "path = os.path.join(sys.argv[1], 'info'); "
    "os.makedirs(path, exist_ok=True); "
    "open(os.path.join(path, 'refs'), 'wb').write("
    "b'1111111111111111111111111111111111111111\\trefs/heads/master\\n')"
)

BLOB_SHA = "ab" + "c" * 38
PACK_SHA = "d" * 40


def python_command(script: str, *args: str) -> list[str]:
    """Return a command line running a Python snippet."""
    return [sys.executable, "-c", script, *args]


class FakeBackend(Backend):
    """Backend running small Python programs instead of git.

    Attributes:
      advertise_script: Program producing the ref advertisement
      rpc_script: Program handling stateless RPC requests
      update_script: Program refreshing info/refs
      commands: Command lines of the processes started so far
    """

    advertise_script = ADVERTISE_SCRIPT
    rpc_script = ECHO_SCRIPT
    update_script = UPDATE_SERVER_INFO_SCRIPT

    def __init__(self, root, max_processes=None):
        super().__init__(root, max_processes=max_processes)
        self.commands = []

    def service_command(self, service, path, advertise_refs=False):
        if advertise_refs:
            argv = python_command(self.advertise_script, service.value, path)
        else:
            argv = python_command(self.rpc_script, service.value, path)
        self.commands.append(argv)
        return argv

    def update_server_info_command(self, path):
        argv = python_command(self.update_script, path)
        self.commands.append(argv)
        return argv


def make_repository(root, name="repo.git"):
    """Create a directory laid out like a bare repository with some content.

    Args:
      root: Directory to create the repository in
      name: Relative path of the repository
    Returns: Path of the repository
    """
    path = os.path.join(root, *name.split("/"))
    os.makedirs(os.path.join(path, "objects", "info"))
    os.makedirs(os.path.join(path, "objects", "pack"))
    os.makedirs(os.path.join(path, "objects", BLOB_SHA[:2]))
    files = {
        ("HEAD",): b"ref: refs/heads/master\n",
        ("objects", "info", "packs"): f"P pack-{PACK_SHA}.pack\n".encode("ascii"),
        ("objects", "info", "alternates"): b"../../other.git/objects\n",
        ("objects", BLOB_SHA[:2], BLOB_SHA[2:]): b"x\x01loose object",
        ("objects", "pack", f"pack-{PACK_SHA}.pack"): b"PACK" + bytes(range(60)),
        ("objects", "pack", f"pack-{PACK_SHA}.idx"): b"\377tOc" + bytes(12),
    }
    for parts, contents in files.items():
        with open(os.path.join(path, *parts), "wb") as f:
            f.write(contents)
    return path


def make_root(testcase):
    """Create a temporary project root that is removed after the test."""
    root = tempfile.mkdtemp()
    testcase.addCleanup(shutil.rmtree, root)
    return root



class InMemoryBackend(Backend):
    """Backend answering from memory, without starting any processes.

    The advertisement is always b"X"; RPC requests are answered with
    b"reply:" followed by the request body.

    Attributes:
      calls: Names of the backend operations used so far
    """

    def __init__(self, root):
        super().__init__(root)
        self.calls = []

    def advertise_refs(self, service, path, git_protocol=None):
        self.calls.append("advertise_refs")
        return b"X"

    def update_server_info(self, path):
        self.calls.append("update_server_info")
        os.makedirs(os.path.join(path, "info"), exist_ok=True)
        with open(os.path.join(path, "info", "refs"), "wb") as f:
            f.write(b"2222222222222222222222222222222222222222\trefs/heads/main\n")

    def stateless_rpc(self, service, path, read, git_protocol=None):
        self.calls.append("stateless_rpc")
        chunks = []
        while True:
            data = read(65536)
            if not data:
                break
            chunks.append(data)
        return iter([b"reply:" + b"".join(chunks)])

    async def stateless_rpc_async(self, service, path, body, git_protocol=None):
        self.calls.append("stateless_rpc_async")
        data = b"".join([chunk async for chunk in body])

        async def reply():
            yield b"reply:" + data

        return reply()
