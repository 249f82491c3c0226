# test_web.py -- Compatibility tests for the WSGI gateway.
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

"""Compatibility tests between the WSGI gateway and the cgit HTTP client.

warning: these tests should be fairly stable, but when writing/debugging new
    tests, deadlocks may freeze the test process such that it cannot be
    Ctrl-C'ed. On POSIX systems, you can kill the tests with Ctrl-Z, "kill %".
"""

import os
import sys
import threading
from wsgiref import simple_server

from gitgateway.protocol import Service
from gitgateway.web import (
    WSGIRequestHandlerLogger,
    WSGIServerLogger,
    make_wsgi_chain,
)

from .. import skipIf
from .server_utils import ServerTests
from .utils import CompatTestCase, run_git, run_git_or_fail


@skipIf(sys.platform == "win32", "Broken on windows, with very long fail time.")
class WebTests(ServerTests):
    """Base tests for web server tests.

    Contains utility and setUp/tearDown methods, but does not inherit from
    TestCase so tests are not automatically run.
    """

    def _start_server(self, backend):
        app = make_wsgi_chain(backend, services=self.services)
        server = simple_server.make_server(
            "localhost",
            0,
            app,
            server_class=WSGIServerLogger,
            handler_class=WSGIRequestHandlerLogger,
        )
        self.addCleanup(server.shutdown)
        self.addCleanup(server.server_close)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        self._server = server
        _, port = server.socket.getsockname()
        return port


@skipIf(sys.platform == "win32", "Broken on windows, with very long fail time.")
class SmartWebTestCase(WebTests, CompatTestCase):
    """Test cases for the WSGI gateway with all services enabled."""

    def test_concurrent_clones(self) -> None:
        self.commit("a.txt", "first\n")
        self.push()
        base = self.make_tempdir()
        results = []

        def clone(i):
            returncode, _ = run_git(
                ["clone", "--quiet", self.url(), os.path.join(base, str(i))],
                capture_stdout=True,
            )
            results.append(returncode)

        threads = [threading.Thread(target=clone, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual([0, 0, 0, 0], results)


@skipIf(sys.platform == "win32", "Broken on windows, with very long fail time.")
class ReadOnlyWebTestCase(WebTests, CompatTestCase):
    """Test cases for the WSGI gateway with pushes disabled."""

    services = frozenset([Service.UPLOAD_PACK])

    def push(self):
        # Seed the served repository directly; pushes over HTTP are refused.
        run_git_or_fail(["push", self.repo_path, "master:master"], cwd=self.work)

    def test_push_to_gateway(self) -> None:
        self.commit("a.txt", "first\n")
        returncode, _ = run_git(
            ["push", self.url(), "master:master"], cwd=self.work, capture_stdout=True
        )
        self.assertNotEqual(0, returncode)
