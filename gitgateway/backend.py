# backend.py -- Running git as the gateway's backend process
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

"""Backends that do the actual git work behind the gateway.

The gateway never looks inside pack data or negotiation messages. Everything
but the HTTP framing is delegated to a git process run in stateless-RPC mode:

    git upload-pack --stateless-rpc [--advertise-refs] <path>
    git receive-pack --stateless-rpc [--advertise-refs] <path>

In RPC mode the request body is copied into the process while its output is
copied out at the same time. Doing one after the other deadlocks as soon as
the process blocks writing to a full stdout pipe while we block writing to
its full stdin pipe.
"""

__all__ = [
    "DEFAULT_BUFSIZE",
    "AsyncStatelessRPCProcess",
    "Backend",
    "BackendBusy",
    "BackendError",
    "BackendExitError",
    "BackendIOFailure",
    "BackendSpawnFailure",
    "GitBackend",
    "MalformedRequestBody",
    "ProcessLimiter",
    "StatelessRPCProcess",
    "find_git_command",
    "run_command",
]

import asyncio
import os
import re
import subprocess
import sys
import threading
import zlib
from collections.abc import (
    AsyncIterable,
    AsyncIterator,
    Callable,
    Iterator,
    Sequence,
)
from contextlib import contextmanager
from typing import Optional, Union

from . import log_utils
from .errors import InvalidRepositoryPath, NotGitRepository
from .protocol import Service
from .routing import check_repository_id

logger = log_utils.getLogger(__name__)

DEFAULT_BUFSIZE = 65536

_GIT_PROTOCOL_RE = re.compile(r"[A-Za-z0-9=:._-]+")


class BackendError(Exception):
    """Base class for failures of the backend process."""

    def __init__(self, argv: Sequence[str], message: str) -> None:
        """Initialize a BackendError.

        Args:
            argv: Command line of the backend process.
            message: Description of the failure.
        """
        self.argv = list(argv)
        Exception.__init__(self, message)


class BackendSpawnFailure(BackendError):
    """The backend process could not be started."""

    def __init__(self, argv: Sequence[str], error: OSError) -> None:
        self.error = error
        super().__init__(argv, f"Unable to start {argv[0]}: {error}")


class BackendIOFailure(BackendError):
    """Communicating with the backend process over its pipes failed."""

    def __init__(self, argv: Sequence[str], error: OSError) -> None:
        self.error = error
        super().__init__(argv, f"I/O error talking to {argv[0]}: {error}")


class BackendExitError(BackendError):
    """The backend process exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: bytes) -> None:
        """Initialize a BackendExitError.

        Args:
            argv: Command line of the backend process.
            returncode: Exit status of the process.
            stderr: Everything the process wrote to its standard error.
        """
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            argv, f"{' '.join(argv)} exited with status {returncode}"
        )


class BackendBusy(BackendError):
    """Too many backend processes are already running."""

    def __init__(self, max_processes: int) -> None:
        self.max_processes = max_processes
        super().__init__(
            [], f"Limit of {max_processes} concurrent backend processes reached"
        )


class MalformedRequestBody(Exception):
    """The HTTP request body could not be read or decoded."""


class ProcessLimiter:
    """Bounds the number of backend processes running at the same time.

    Acquiring never blocks: when no slot is free the request is refused, so
    a burst of clients cannot pile up threads waiting for a process.
    """

    def __init__(self, max_processes: Optional[int] = None) -> None:
        """Initialize a ProcessLimiter.

        Args:
          max_processes: Maximum number of concurrent processes, or None for
            no limit.
        """
        if max_processes is not None and max_processes < 1:
            raise ValueError("max_processes must be at least 1")
        self.max_processes = max_processes
        self._semaphore: Optional[threading.BoundedSemaphore] = None
        if max_processes is not None:
            self._semaphore = threading.BoundedSemaphore(max_processes)

    def acquire(self) -> None:
        """Take a slot.

        Raises:
          BackendBusy: if all slots are taken
        """
        if self._semaphore is None:
            return
        if not self._semaphore.acquire(blocking=False):
            assert self.max_processes is not None
            raise BackendBusy(self.max_processes)

    def release(self) -> None:
        """Return a slot taken with acquire()."""
        if self._semaphore is not None:
            self._semaphore.release()

    @contextmanager
    def slot(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()


def _log_stderr(argv: Sequence[str], stderr: bytes) -> None:
    for line in stderr.splitlines():
        logger.debug("%s: %s", argv[0], line.decode("utf-8", "replace"))


def run_command(
    argv: Sequence[str], env: Optional[dict[str, str]] = None
) -> bytes:
    """Run a backend command without input and capture its output.

    Args:
      argv: Command line to run
      env: Environment for the process, or None to inherit ours
    Returns: Everything the process wrote to standard output
    Raises:
      BackendSpawnFailure: if the process could not be started
      BackendIOFailure: if reading its output failed
      BackendExitError: if it exited with a non-zero status
    """
    logger.debug("Running %s", " ".join(argv))
    try:
        p = subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
    except OSError as e:
        raise BackendSpawnFailure(argv, e) from e
    try:
        stdout, stderr = p.communicate()
    except OSError as e:
        p.kill()
        p.wait()
        raise BackendIOFailure(argv, e) from e
    _log_stderr(argv, stderr)
    if p.returncode != 0:
        raise BackendExitError(argv, p.returncode, stderr)
    return stdout


class StatelessRPCProcess:
    """A backend process serving a single stateless RPC exchange.

    The request body is copied into the process by a feeder thread while the
    caller iterates over this object to receive the process's output as it
    is produced. Standard error is drained into the log by a third thread.

    Closing the object (or the iterator, e.g. because the HTTP client went
    away) before the output is exhausted kills the process.
    """

    def __init__(
        self,
        argv: Sequence[str],
        read: Callable[[int], bytes],
        env: Optional[dict[str, str]] = None,
        on_close: Optional[Callable[[], None]] = None,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> None:
        """Start the process.

        Args:
          argv: Command line of the backend process
          read: Callable returning up to n bytes of the request body, and
            b"" once it is exhausted
          env: Environment for the process, or None to inherit ours
          on_close: Called exactly once after the process has been reaped
          bufsize: Size of the chunks copied in each direction
        Raises:
          BackendSpawnFailure: if the process could not be started
        """
        self.argv = list(argv)
        self.bufsize = bufsize
        self.returncode: Optional[int] = None
        self.input_error: Optional[MalformedRequestBody] = None
        self._read = read
        self._on_close = on_close
        self._closed = False
        logger.debug("Starting %s", " ".join(self.argv))
        try:
            self._proc = subprocess.Popen(
                self.argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise BackendSpawnFailure(self.argv, e) from e
        name = os.path.basename(self.argv[0])
        self._feeder = threading.Thread(
            target=self._feed, name=f"{name}-stdin", daemon=True
        )
        self._stderr_reader = threading.Thread(
            target=self._drain_stderr, name=f"{name}-stderr", daemon=True
        )
        self._feeder.start()
        self._stderr_reader.start()

    @property
    def pid(self) -> int:
        return self._proc.pid

    def _feed(self) -> None:
        stdin = self._proc.stdin
        assert stdin is not None
        try:
            while True:
                data = self._read(self.bufsize)
                if not data:
                    break
                stdin.write(data)
        except BrokenPipeError:
            logger.debug("%s stopped reading its input", self.argv[0])
        except (OSError, ValueError, EOFError, zlib.error) as e:
            self.input_error = MalformedRequestBody(str(e))
            logger.warning("Unable to read request body: %s", e)
            self._kill()
        finally:
            try:
                stdin.close()
            except BrokenPipeError:
                pass

    def _drain_stderr(self) -> None:
        stderr = self._proc.stderr
        assert stderr is not None
        for line in iter(stderr.readline, b""):
            logger.debug(
                "%s: %s", self.argv[0], line.rstrip(b"\n").decode("utf-8", "replace")
            )

    def _kill(self) -> None:
        if self._proc.poll() is None:
            self._proc.kill()

    def __iter__(self) -> Iterator[bytes]:
        stdout = self._proc.stdout
        assert stdout is not None
        try:
            while True:
                try:
                    data = stdout.read1(self.bufsize)
                except OSError as e:
                    raise BackendIOFailure(self.argv, e) from e
                if not data:
                    break
                yield data
            self._finish()
        finally:
            self.close()

    def _finish(self) -> None:
        self._feeder.join()
        self.returncode = self._proc.wait()
        if self.input_error is not None:
            return
        if self.returncode != 0:
            # The response has already been (partially) sent; all we can do
            # is make a note of it.
            logger.warning(
                "%s exited with status %d", " ".join(self.argv), self.returncode
            )

    def close(self) -> None:
        """Kill the process if it is still running and release its resources."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._proc.poll() is None:
                logger.info("Terminating unfinished %s", " ".join(self.argv))
                self._proc.kill()
            self.returncode = self._proc.wait()
            # Grandchildren may hold stderr open for a little while longer.
            self._stderr_reader.join(timeout=5)
            for f in (self._proc.stdout, self._proc.stderr):
                if f is not None:
                    f.close()
        finally:
            if self._on_close is not None:
                self._on_close()


class AsyncStatelessRPCProcess:
    """asyncio counterpart of StatelessRPCProcess.

    The request body is copied into the process by one task and standard
    error is drained into the log by another, while the caller iterates
    over this object with ``async for``. Call aclose() when done, whether
    or not the output was exhausted.
    """

    def __init__(
        self,
        argv: Sequence[str],
        proc: asyncio.subprocess.Process,
        body: AsyncIterable[bytes],
        on_close: Optional[Callable[[], None]] = None,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> None:
        self.argv = list(argv)
        self.bufsize = bufsize
        self.returncode: Optional[int] = None
        self.input_error: Optional[MalformedRequestBody] = None
        self._proc = proc
        self._on_close = on_close
        self._closed = False
        self._tasks = [
            asyncio.ensure_future(self._feed(body)),
            asyncio.ensure_future(self._drain_stderr()),
        ]

    @classmethod
    async def start(
        cls,
        argv: Sequence[str],
        body: AsyncIterable[bytes],
        env: Optional[dict[str, str]] = None,
        on_close: Optional[Callable[[], None]] = None,
        bufsize: int = DEFAULT_BUFSIZE,
    ) -> "AsyncStatelessRPCProcess":
        """Start the process.

        Args:
          argv: Command line of the backend process
          body: The request body
          env: Environment for the process, or None to inherit ours
          on_close: Called exactly once after the process has been reaped
          bufsize: Size of the chunks copied in each direction
        Raises:
          BackendSpawnFailure: if the process could not be started
        """
        logger.debug("Starting %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise BackendSpawnFailure(argv, e) from e
        return cls(argv, proc, body, on_close=on_close, bufsize=bufsize)

    @property
    def pid(self) -> int:
        return self._proc.pid

    async def _feed(self, body: AsyncIterable[bytes]) -> None:
        stdin = self._proc.stdin
        assert stdin is not None
        try:
            async for chunk in body:
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("%s stopped reading its input", self.argv[0])
        except MalformedRequestBody as e:
            self.input_error = e
            logger.warning("Unable to read request body: %s", e)
            self._kill()
        finally:
            if not stdin.is_closing():
                stdin.close()

    def _log_stderr_line(self, line: bytes) -> None:
        logger.debug("%s: %s", self.argv[0], line.decode("utf-8", "replace"))

    async def _drain_stderr(self) -> None:
        # StreamReader.readline() fails on lines longer than the stream
        # limit, so split lines ourselves.
        stderr = self._proc.stderr
        assert stderr is not None
        pending = b""
        while True:
            data = await stderr.read(self.bufsize)
            if not data:
                break
            *lines, pending = (pending + data).split(b"\n")
            for line in lines:
                self._log_stderr_line(line)
            if len(pending) >= self.bufsize:
                self._log_stderr_line(pending)
                pending = b""
        if pending:
            self._log_stderr_line(pending)

    def _kill(self) -> None:
        if self._proc.returncode is None:
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass

    async def __aiter__(self) -> AsyncIterator[bytes]:
        stdout = self._proc.stdout
        assert stdout is not None
        while True:
            data = await stdout.read(self.bufsize)
            if not data:
                break
            yield data
        await asyncio.gather(*self._tasks)
        self.returncode = await self._proc.wait()
        if self.input_error is None and self.returncode != 0:
            logger.warning(
                "%s exited with status %d", " ".join(self.argv), self.returncode
            )

    async def aclose(self) -> None:
        """Kill the process if it is still running and release its resources."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._proc.returncode is None:
                logger.info("Terminating unfinished %s", " ".join(self.argv))
                self._kill()
            self.returncode = await self._proc.wait()
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
        finally:
            if self._on_close is not None:
                self._on_close()


class Backend:
    """A backend for the git HTTP gateway.

    Subclasses decide which commands are run; this class takes care of
    locating repositories, running the commands and limiting how many run
    concurrently.
    """

    def __init__(self, root: str, max_processes: Optional[int] = None) -> None:
        """Initialize a Backend.

        Args:
          root: Directory containing the served repositories
          max_processes: Maximum number of concurrent backend processes,
            or None for no limit
        """
        self.root = os.path.abspath(root)
        self.limiter = ProcessLimiter(max_processes)

    def open_repository(self, repo_id: str) -> str:
        """Resolve a repository identifier taken from a URL.

        Args:
          repo_id: Repository identifier, relative to the root
        Returns: Absolute path of the repository
        Raises:
          InvalidRepositoryPath: if the identifier is not a safe relative path
          NotGitRepository: if there is no repository directory at that path
        """
        check_repository_id(repo_id)
        path = os.path.normpath(os.path.join(self.root, *repo_id.split("/")))
        if os.path.commonpath([self.root, path]) != self.root:
            raise InvalidRepositoryPath(repo_id, "outside of the project root")
        if not os.path.isdir(path):
            raise NotGitRepository(f"No git repository was found at {repo_id}")
        logger.debug("opening repository at %s", path)
        return path

    def service_command(
        self, service: Service, path: str, advertise_refs: bool = False
    ) -> list[str]:
        """Return the command line implementing a service.

        Args:
          service: The service requested by the client
          path: Absolute path of the repository
          advertise_refs: Whether to only advertise refs
        """
        raise NotImplementedError(self.service_command)

    def update_server_info_command(self, path: str) -> list[str]:
        """Return the command line refreshing the dumb-protocol listings."""
        raise NotImplementedError(self.update_server_info_command)

    def service_environment(
        self, git_protocol: Optional[str] = None
    ) -> Optional[dict[str, str]]:
        """Return the environment for a service process.

        Args:
          git_protocol: Value of the client's Git-Protocol header, if any
        Returns: A new environment, or None to inherit ours unchanged
        """
        if not git_protocol:
            return None
        if not _GIT_PROTOCOL_RE.fullmatch(git_protocol):
            logger.warning("Ignoring malformed Git-Protocol header %r", git_protocol)
            return None
        env = dict(os.environ)
        env["GIT_PROTOCOL"] = git_protocol
        return env

    def advertise_refs(
        self, service: Service, path: str, git_protocol: Optional[str] = None
    ) -> bytes:
        """Run the ref advertisement of a service.

        Args:
          service: The service requested by the client
          path: Absolute path of the repository
          git_protocol: Value of the client's Git-Protocol header, if any
        Returns: The complete advertisement, without the service announcement
        Raises:
          BackendBusy: if too many processes are running
          BackendError: if the process failed
        """
        argv = self.service_command(service, path, advertise_refs=True)
        with self.limiter.slot():
            return run_command(argv, env=self.service_environment(git_protocol))

    def stateless_rpc(
        self,
        service: Service,
        path: str,
        read: Callable[[int], bytes],
        git_protocol: Optional[str] = None,
    ) -> StatelessRPCProcess:
        """Start a stateless RPC exchange.

        Args:
          service: The service requested by the client
          path: Absolute path of the repository
          read: Callable returning up to n bytes of the request body
          git_protocol: Value of the client's Git-Protocol header, if any
        Returns: The running process; iterate over it for the response body
        Raises:
          BackendBusy: if too many processes are running
          BackendSpawnFailure: if the process could not be started
        """
        argv = self.service_command(service, path)
        self.limiter.acquire()
        try:
            return StatelessRPCProcess(
                argv,
                read,
                env=self.service_environment(git_protocol),
                on_close=self.limiter.release,
            )
        except BaseException:
            self.limiter.release()
            raise

    async def stateless_rpc_async(
        self,
        service: Service,
        path: str,
        body: AsyncIterable[bytes],
        git_protocol: Optional[str] = None,
    ) -> AsyncStatelessRPCProcess:
        """Start a stateless RPC exchange from asyncio code.

        Args:
          service: The service requested by the client
          path: Absolute path of the repository
          body: The request body
          git_protocol: Value of the client's Git-Protocol header, if any
        Returns: The running process; iterate over it with ``async for``
        Raises:
          BackendBusy: if too many processes are running
          BackendSpawnFailure: if the process could not be started
        """
        argv = self.service_command(service, path)
        self.limiter.acquire()
        try:
            return await AsyncStatelessRPCProcess.start(
                argv,
                body,
                env=self.service_environment(git_protocol),
                on_close=self.limiter.release,
            )
        except BaseException:
            self.limiter.release()
            raise

    def update_server_info(self, path: str) -> None:
        """Refresh info/refs and objects/info/packs for dumb clients.

        Raises:
          BackendBusy: if too many processes are running
          BackendError: if the process failed
        """
        with self.limiter.slot():
            run_command(self.update_server_info_command(path))


def find_git_command() -> list[str]:
    """Find command to run for system Git (usually C Git)."""
    if sys.platform == "win32":  # support .exe, .bat and .cmd
        return ["cmd", "/c", "git"]
    return ["git"]


class GitBackend(Backend):
    """Backend that runs the git command-line tool."""

    def __init__(
        self,
        root: str,
        git_command: Union[str, Sequence[str], None] = None,
        max_processes: Optional[int] = None,
    ) -> None:
        """Initialize a GitBackend.

        Args:
          root: Directory containing the served repositories
          git_command: Git executable, or a command line prefix running git;
            defaults to git on the PATH
          max_processes: Maximum number of concurrent git processes
        """
        super().__init__(root, max_processes=max_processes)
        if git_command is None:
            self.git_command = find_git_command()
        elif isinstance(git_command, str):
            self.git_command = [git_command]
        else:
            self.git_command = list(git_command)

    def service_command(
        self, service: Service, path: str, advertise_refs: bool = False
    ) -> list[str]:
        argv = [*self.git_command, service.command, "--stateless-rpc"]
        if advertise_refs:
            argv.append("--advertise-refs")
        argv.append(path)
        return argv

    def update_server_info_command(self, path: str) -> list[str]:
        return [*self.git_command, f"--git-dir={path}", "update-server-info"]
