# web.py -- WSGI smart-http gateway
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

"""WSGI gateway that implements the git smart and dumb HTTP protocols."""

__all__ = [
    "DEFAULT_SERVICES",
    "HTTP_BAD_REQUEST",
    "HTTP_ERROR",
    "HTTP_FORBIDDEN",
    "HTTP_METHOD_NOT_ALLOWED",
    "HTTP_NOT_FOUND",
    "HTTP_OK",
    "HTTP_UNAVAILABLE",
    "NO_CACHE_HEADERS",
    "ChunkReader",
    "GunzipFilter",
    "HTTPGitApplication",
    "HTTPGitRequest",
    "LimitedInputFilter",
    "WSGIRequestHandlerLogger",
    "WSGIServerLogger",
    "cache_forever_headers",
    "cache_headers",
    "date_time_string",
    "get_info_refs",
    "get_text_file",
    "handle_service_request",
    "main",
    "make_argument_parser",
    "make_wsgi_chain",
    "send_file",
]

import argparse
import os
import stat
import sys
import time
from collections.abc import Callable, Iterable, Iterator, Sequence
from socketserver import ThreadingMixIn
from types import TracebackType
from typing import Any, BinaryIO, ClassVar, Optional, Union
from urllib.parse import parse_qs
from wsgiref.simple_server import (
    ServerHandler,
    WSGIRequestHandler,
    WSGIServer,
    make_server,
)

# wsgiref.types was added in Python 3.11
if sys.version_info >= (3, 11):
    from wsgiref.types import StartResponse, WSGIApplication, WSGIEnvironment
else:
    # At runtime, just use type aliases since these are only for type hints
    StartResponse = Any
    WSGIEnvironment = dict[str, Any]
    WSGIApplication = Callable

from . import log_utils
from .backend import (
    Backend,
    BackendBusy,
    BackendError,
    BackendIOFailure,
    GitBackend,
)
from .errors import InvalidRepositoryPath, NotGitRepository
from .protocol import PayloadTooLarge, Service, service_announcement
from .routing import ContentClass, Matched, Router, WrongMethod, build_router

logger = log_utils.getLogger(__name__)


# HTTP error strings
HTTP_OK = "200 OK"
HTTP_BAD_REQUEST = "400 Bad Request"
HTTP_FORBIDDEN = "403 Forbidden"
HTTP_NOT_FOUND = "404 Not Found"
HTTP_METHOD_NOT_ALLOWED = "405 Method Not Allowed"
HTTP_ERROR = "500 Internal Server Error"
HTTP_UNAVAILABLE = "503 Service Unavailable"

DEFAULT_SERVICES = frozenset(Service)

NO_CACHE_HEADERS = [
    ("Expires", "Fri, 01 Jan 1980 00:00:00 GMT"),
    ("Pragma", "no-cache"),
    ("Cache-Control", "no-cache, max-age=0, must-revalidate"),
]

CACHE_FOREVER_SECONDS = 31536000


def cache_forever_headers(now: Optional[float] = None) -> list[tuple[str, str]]:
    """Generate headers for caching forever.

    Args:
      now: Timestamp to use as base (defaults to current time)

    Returns:
      List of (header_name, header_value) tuples for caching forever
    """
    if now is None:
        now = time.time()
    return [
        ("Date", date_time_string(now)),
        ("Expires", date_time_string(now + CACHE_FOREVER_SECONDS)),
        ("Cache-Control", f"public, max-age={CACHE_FOREVER_SECONDS}"),
    ]


def cache_headers(
    content_class: ContentClass, now: Optional[float] = None
) -> list[tuple[str, str]]:
    """Return the caching headers for a class of content."""
    if content_class is ContentClass.IMMUTABLE:
        return cache_forever_headers(now)
    return list(NO_CACHE_HEADERS)


def date_time_string(timestamp: Optional[float] = None) -> str:
    """Convert a timestamp to an HTTP date string.

    Args:
      timestamp: Unix timestamp to convert (defaults to current time)

    Returns:
      HTTP date string in RFC 1123 format
    """
    # From BaseHTTPRequestHandler.date_time_string in the Python standard
    # library, made a global and with the name tables as locals.
    # Copyright (c) 2001-2010 Python Software Foundation; All Rights Reserved
    weekdays = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = [
        None,
        "Jan",
        "Feb",
        "Mar",
        "Apr",
        "May",
        "Jun",
        "Jul",
        "Aug",
        "Sep",
        "Oct",
        "Nov",
        "Dec",
    ]
    if timestamp is None:
        timestamp = time.time()
    year, month, day, hh, mm, ss, wd = time.gmtime(timestamp)[:7]
    return "%s, %02d %3s %4d %02d:%02d:%02d GMT" % (  # noqa: UP031
        weekdays[wd],
        day,
        months[month],
        year,
        hh,
        mm,
        ss,
    )


def send_file(
    req: "HTTPGitRequest", path: str, content_type: str
) -> Iterator[bytes]:
    """Send a file from the repository to the request output.

    Args:
      req: The HTTPGitRequest object to send output to.
      path: Path of the file to send.
      content_type: The MIME type for the file.
    Returns: Iterator over the contents of the file, as chunks.
    """
    try:
        st = os.stat(path)
        if not stat.S_ISREG(st.st_mode):
            yield req.not_found(f"Not a regular file: {path}")
            return
        f = open(path, "rb")
    except (FileNotFoundError, NotADirectoryError):
        yield req.not_found(f"File not found: {path}")
        return
    except OSError as e:
        yield req.error(f"Error opening {path}: {e}")
        return
    with f:
        req.respond(
            HTTP_OK,
            content_type,
            headers=[
                ("Content-Length", str(st.st_size)),
                ("Last-Modified", date_time_string(st.st_mtime)),
            ],
        )
        while True:
            try:
                data = f.read(10240)
            except OSError as e:
                # Headers are out; the client notices the short body.
                logger.error("Error reading %s: %s", path, e)
                return
            if not data:
                break
            yield data


def _file_path(repo_path: str, match: "Matched[Any]") -> str:
    return os.path.join(repo_path, *match.suffix.split("/"))


def get_text_file(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send a plain text file from the repository.

    Args:
      req: The HTTP request object
      backend: The git backend
      match: The route match for the requested path
      repo_path: Path of the repository

    Returns:
      Iterator yielding file contents as bytes
    """
    req.cache_for(match.content_class)
    path = _file_path(repo_path, match)
    logger.info("Sending plain text file %s", path)
    return send_file(req, path, "text/plain")


def get_info_packs(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send the objects/info/packs listing."""
    req.cache_for(match.content_class)
    path = _file_path(repo_path, match)
    logger.info("Sending pack listing %s", path)
    return send_file(req, path, "text/plain; charset=utf-8")


def get_loose_object(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send a loose git object, verbatim."""
    req.cache_for(match.content_class)
    path = _file_path(repo_path, match)
    logger.info("Sending loose object %s", path)
    return send_file(req, path, "application/x-git-loose-object")


def get_pack_file(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send a git pack file."""
    req.cache_for(match.content_class)
    path = _file_path(repo_path, match)
    logger.info("Sending pack file %s", path)
    return send_file(req, path, "application/x-git-packed-objects")


def get_idx_file(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send a git pack index file."""
    req.cache_for(match.content_class)
    path = _file_path(repo_path, match)
    logger.info("Sending pack index %s", path)
    return send_file(req, path, "application/x-git-packed-objects-toc")


def get_info_refs(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Send git info/refs for discovery.

    With a ``service`` query parameter this is the smart protocol's ref
    advertisement; without one, the dumb protocol's info/refs file is
    refreshed and sent.

    Args:
      req: The HTTP request object
      backend: The git backend
      match: The route match for the info/refs request
      repo_path: Path of the repository

    Returns:
      Iterator yielding refs advertisement or info/refs contents
    """
    params = parse_qs(req.environ.get("QUERY_STRING", ""))
    service_name = params.get("service", [None])[0]
    if service_name:
        service = req.service(service_name)
        if service is None:
            yield req.forbidden(f"Unsupported service {service_name}")
            return
        try:
            body = service_announcement(service) + backend.advertise_refs(
                service, repo_path, git_protocol=req.git_protocol
            )
        except BackendBusy as e:
            yield req.unavailable(str(e))
            return
        except (BackendError, PayloadTooLarge) as e:
            yield req.error(str(e))
            return
        req.cache_for(match.content_class)
        req.respond(
            HTTP_OK,
            service.advertisement_content_type,
            headers=[("Content-Length", str(len(body)))],
        )
        yield body
    else:
        # TODO: only refresh when refs or packs changed since the last run.
        try:
            backend.update_server_info(repo_path)
        except BackendBusy as e:
            yield req.unavailable(str(e))
            return
        except BackendError as e:
            yield req.error(str(e))
            return
        req.cache_for(match.content_class)
        logger.info("Sending dumb info/refs")
        yield from send_file(req, _file_path(repo_path, match), "text/plain")


def handle_service_request(
    req: "HTTPGitRequest", backend: Backend, match: "Matched[Any]", repo_path: str
) -> Iterator[bytes]:
    """Handle a git service request (upload-pack or receive-pack).

    Args:
      req: The HTTP request object
      backend: The git backend
      match: The route match for the service request
      repo_path: Path of the repository

    Returns:
      Iterator yielding the backend's output as it is produced
    """
    service = req.service(match.suffix)
    if service is None:
        yield req.forbidden(f"Unsupported service {match.suffix}")
        return
    logger.info("Handling service request for %s", service.value)
    try:
        proc = backend.stateless_rpc(
            service,
            repo_path,
            req.environ["wsgi.input"].read,
            git_protocol=req.git_protocol,
        )
    except BackendBusy as e:
        yield req.unavailable(str(e))
        return
    except BackendError as e:
        yield req.error(str(e))
        return
    req.cache_for(match.content_class)
    req.respond(HTTP_OK, service.result_content_type)
    try:
        yield from proc
    except BackendIOFailure as e:
        logger.error("%s", e)


class HTTPGitRequest:
    """Class encapsulating the state of a single git HTTP request.

    Attributes:
      environ: the WSGI environment for the request.
    """

    def __init__(
        self,
        environ: WSGIEnvironment,
        start_response: StartResponse,
        services: Iterable[Service] = DEFAULT_SERVICES,
    ) -> None:
        """Initialize HTTPGitRequest.

        Args:
            environ: WSGI environment dictionary
            start_response: WSGI start_response callable
            services: Services clients may use
        """
        self.environ = environ
        self.services = frozenset(services)
        self._start_response = start_response
        self._cache_headers: list[tuple[str, str]] = []
        self._headers: list[tuple[str, str]] = []

    @property
    def git_protocol(self) -> Optional[str]:
        """The client's Git-Protocol header, if it sent one."""
        return self.environ.get("HTTP_GIT_PROTOCOL")

    def service(self, name: str) -> Optional[Service]:
        """Look up a service the client asked for, if it is enabled."""
        service = Service.from_name(name)
        if service not in self.services:
            return None
        return service

    def respond(
        self,
        status: str = HTTP_OK,
        content_type: Optional[str] = None,
        headers: Optional[Sequence[tuple[str, str]]] = None,
    ) -> Callable[[bytes], object]:
        """Begin a response with the given status and other headers."""
        if headers:
            self._headers.extend(headers)
        if content_type:
            self._headers.append(("Content-Type", content_type))
        self._headers.extend(self._cache_headers)

        return self._start_response(status, self._headers)

    def _fail(
        self,
        status: str,
        headers: Optional[Sequence[tuple[str, str]]] = None,
    ) -> bytes:
        self._cache_headers = []
        self._headers = []
        self.respond(status, headers=headers)
        return b""

    def not_found(self, message: str) -> bytes:
        """Begin a HTTP 404 response and return its (empty) body."""
        logger.info("Not found: %s", message)
        return self._fail(HTTP_NOT_FOUND)

    def method_not_allowed(self, allowed: str) -> bytes:
        """Begin a HTTP 405 response and return its (empty) body."""
        logger.info(
            "Method %s not allowed for %s",
            self.environ.get("REQUEST_METHOD"),
            self.environ.get("PATH_INFO"),
        )
        return self._fail(HTTP_METHOD_NOT_ALLOWED, headers=[("Allow", allowed)])

    def forbidden(self, message: str) -> bytes:
        """Begin a HTTP 403 response and return its (empty) body."""
        logger.info("Forbidden: %s", message)
        return self._fail(HTTP_FORBIDDEN)

    def bad_request(self, message: str) -> bytes:
        """Begin a HTTP 400 response and return its (empty) body."""
        logger.warning("Bad request: %s", message)
        return self._fail(HTTP_BAD_REQUEST)

    def error(self, message: str) -> bytes:
        """Begin a HTTP 500 response and return its (empty) body."""
        logger.error("Error: %s", message)
        return self._fail(HTTP_ERROR)

    def unavailable(self, message: str) -> bytes:
        """Begin a HTTP 503 response and return its (empty) body."""
        logger.warning("Unavailable: %s", message)
        return self._fail(HTTP_UNAVAILABLE, headers=[("Retry-After", "1")])

    def cache_for(self, content_class: ContentClass) -> None:
        """Set the caching headers appropriate for a class of content."""
        self._cache_headers = cache_headers(content_class)


WSGIHandler = Callable[
    [HTTPGitRequest, Backend, "Matched[Any]", str], Iterable[bytes]
]


class HTTPGitApplication:
    """Class encapsulating the state of a git WSGI application.

    Attributes:
      backend: the Backend object backing this application
    """

    router: ClassVar[Router[WSGIHandler]] = build_router(
        {
            "head": get_text_file,
            "info_refs": get_info_refs,
            "text_file": get_text_file,
            "info_packs": get_info_packs,
            "loose_object": get_loose_object,
            "pack_file": get_pack_file,
            "idx_file": get_idx_file,
            "service": handle_service_request,
        }
    )

    def __init__(
        self,
        backend: Backend,
        services: Optional[Iterable[Service]] = None,
        fallback_app: Optional[WSGIApplication] = None,
    ) -> None:
        """Initialize HTTPGitApplication.

        Args:
            backend: Backend object for git operations
            services: Services clients may use; defaults to all of them
            fallback_app: Optional WSGI application for unmatched paths
        """
        self.backend = backend
        self.services = frozenset(DEFAULT_SERVICES if services is None else services)
        self.fallback_app = fallback_app

    def __call__(
        self,
        environ: WSGIEnvironment,
        start_response: StartResponse,
    ) -> Iterable[bytes]:
        """Handle WSGI request."""
        path = environ["PATH_INFO"]
        method = environ["REQUEST_METHOD"]
        logger.info("%s %s", method, path)
        req = HTTPGitRequest(environ, start_response, services=self.services)
        result = self.router.match(method, path)
        if isinstance(result, WrongMethod):
            return [req.method_not_allowed(result.allowed)]
        if not isinstance(result, Matched):
            if self.fallback_app is not None:
                return self.fallback_app(environ, start_response)
            return [req.not_found(f"No route for {path}")]
        try:
            repo_path = self.backend.open_repository(result.repository)
        except (InvalidRepositoryPath, NotGitRepository) as e:
            return [req.not_found(str(e))]
        return result.handler(req, self.backend, result, repo_path)


def _chunk_iter(f: BinaryIO) -> Iterator[bytes]:
    while True:
        line = f.readline()
        if not line:
            raise EOFError("Unexpected end of chunked request body")
        # Chunk extensions follow a semicolon and are ignored.
        length = int(line.split(b";", 1)[0].strip(), 16)
        if length == 0:
            # Skip trailers up to the terminating empty line.
            while line not in (b"", b"\r\n", b"\n"):
                line = f.readline()
            return
        chunk = f.read(length)
        if len(chunk) != length:
            raise EOFError("Truncated chunk in request body")
        f.read(2)
        yield chunk


class ChunkReader:
    """Reader for chunked transfer encoding streams."""

    def __init__(self, f: BinaryIO) -> None:
        """Initialize ChunkReader.

        Args:
            f: Binary file-like object to read from
        """
        self._iter = _chunk_iter(f)
        self._buffer = b""

    def read(self, n: int = -1) -> bytes:
        """Read from the chunked stream.

        Args:
          n: Maximum number of bytes to return, or -1 for everything

        Returns:
          At most n bytes; fewer than n when the current chunk is used up,
          and b"" at the end of the stream
        """
        if n < 0:
            data = self._buffer + b"".join(self._iter)
            self._buffer = b""
            return data
        if not self._buffer:
            self._buffer = next(self._iter, b"")
        ret = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return ret


class _LengthLimitedFile:
    """Wrapper class to limit the length of reads from a file-like object.

    This is used to ensure EOF is read from the wsgi.input object once
    Content-Length bytes are read. This behavior is required by PEP 3333
    but not implemented in wsgiref.
    """

    def __init__(self, input: BinaryIO, max_bytes: int) -> None:
        self._input = input
        self._bytes_avail = max_bytes

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes from the limited input.

        Args:
          size: Maximum number of bytes to read, or -1 for all available

        Returns:
          Up to size bytes of data
        """
        if self._bytes_avail <= 0:
            return b""
        if size == -1 or size > self._bytes_avail:
            size = self._bytes_avail
        data = self._input.read(size)
        self._bytes_avail -= len(data)
        return data


class GunzipFilter:
    """WSGI middleware that unzips gzip-encoded requests before passing on to the underlying application."""

    def __init__(self, application: WSGIApplication) -> None:
        """Initialize GunzipFilter with WSGI application."""
        self.app = application

    def __call__(
        self,
        environ: WSGIEnvironment,
        start_response: StartResponse,
    ) -> Iterable[bytes]:
        """Handle WSGI request with gzip decompression."""
        import gzip

        encoding = environ.get("HTTP_CONTENT_ENCODING", "")
        if encoding == "gzip":
            environ["wsgi.input"] = gzip.GzipFile(
                filename=None, fileobj=environ["wsgi.input"], mode="rb"
            )
            del environ["HTTP_CONTENT_ENCODING"]
            environ.pop("CONTENT_LENGTH", None)
        elif encoding not in ("", "identity"):
            req = HTTPGitRequest(environ, start_response)
            return [req.bad_request(f"Unsupported content encoding {encoding}")]

        return self.app(environ, start_response)


class LimitedInputFilter:
    """WSGI middleware that makes wsgi.input end where the request body ends.

    The body ends after Content-Length bytes, or with the last chunk of a
    chunked request.
    """

    def __init__(self, application: WSGIApplication) -> None:
        """Initialize LimitedInputFilter with WSGI application."""
        self.app = application

    def __call__(
        self,
        environ: WSGIEnvironment,
        start_response: StartResponse,
    ) -> Iterable[bytes]:
        """Handle WSGI request with input length limiting."""
        # This is not necessary if this app is run from a conforming WSGI
        # server. Unfortunately, there's no way to tell that at this point.
        if environ.get("HTTP_TRANSFER_ENCODING", "").lower() == "chunked":
            environ["wsgi.input"] = ChunkReader(environ["wsgi.input"])
            del environ["HTTP_TRANSFER_ENCODING"]
            return self.app(environ, start_response)
        content_length = environ.get("CONTENT_LENGTH", "")
        if content_length:
            try:
                max_bytes = int(content_length)
                if max_bytes < 0:
                    raise ValueError(content_length)
            except ValueError:
                req = HTTPGitRequest(environ, start_response)
                return [req.bad_request(f"Invalid Content-Length {content_length!r}")]
            environ["wsgi.input"] = _LengthLimitedFile(environ["wsgi.input"], max_bytes)
        return self.app(environ, start_response)


def make_wsgi_chain(
    backend: Backend,
    services: Optional[Iterable[Service]] = None,
    fallback_app: Optional[WSGIApplication] = None,
) -> WSGIApplication:
    """Factory function to create an instance of HTTPGitApplication.

    Correctly wrapped with needed middleware.
    """
    app = HTTPGitApplication(backend, services=services, fallback_app=fallback_app)
    wrapped_app = LimitedInputFilter(GunzipFilter(app))
    return wrapped_app


class ServerHandlerLogger(ServerHandler):
    """ServerHandler that uses gitgateway's logger for logging exceptions."""

    def log_exception(
        self,
        exc_info: Union[
            tuple[type[BaseException], BaseException, TracebackType],
            tuple[None, None, None],
            None,
        ],
    ) -> None:
        """Log exception using gitgateway logger."""
        logger.exception(
            "Exception happened during processing of request",
            exc_info=exc_info,
        )

    def log_message(self, format: str, *args: object) -> None:
        """Log message using gitgateway logger."""
        logger.info(format, *args)

    def log_error(self, *args: object) -> None:
        """Log error using gitgateway logger."""
        logger.error(*args)


class WSGIRequestHandlerLogger(WSGIRequestHandler):
    """WSGIRequestHandler that uses gitgateway's logger for logging exceptions."""

    def log_exception(
        self,
        exc_info: Union[
            tuple[type[BaseException], BaseException, TracebackType],
            tuple[None, None, None],
            None,
        ],
    ) -> None:
        """Log exception using gitgateway logger."""
        logger.exception(
            "Exception happened during processing of request",
            exc_info=exc_info,
        )

    def log_message(self, format: str, *args: object) -> None:
        """Log message using gitgateway logger."""
        logger.debug(format, *args)

    def log_error(self, *args: object) -> None:
        """Log error using gitgateway logger."""
        logger.error(*args)

    def handle(self) -> None:
        """Handle a single HTTP request."""
        self.raw_requestline = self.rfile.readline()
        if not self.parse_request():  # An error code has been sent, just exit
            return

        handler = ServerHandlerLogger(
            self.rfile,
            self.wfile,  # type: ignore
            self.get_stderr(),
            self.get_environ(),
        )
        handler.request_handler = self  # type: ignore  # backpointer for logging
        handler.run(self.server.get_app())  # type: ignore


class WSGIServerLogger(ThreadingMixIn, WSGIServer):
    """Threaded WSGIServer that uses gitgateway's logger for error handling.

    Every request is served in its own thread, so one slow clone does not
    hold up other clients.
    """

    daemon_threads = True

    def handle_error(self, request: object, client_address: tuple[str, int]) -> None:
        """Handle an error."""
        logger.exception(
            f"Exception happened during processing of request from {client_address!s}"
        )


def make_argument_parser(description: str) -> argparse.ArgumentParser:
    """Create the command-line parser shared by the server entry points."""
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "-l",
        "--listen_address",
        dest="listen_address",
        default="localhost",
        help="Binding IP address.",
    )
    parser.add_argument(
        "-p",
        "--port",
        dest="port",
        type=int,
        default=8080,
        help="Port to listen on.",
    )
    parser.add_argument(
        "--git",
        dest="git",
        default=None,
        help="Git executable to run as the backend (default: git on PATH).",
    )
    parser.add_argument(
        "--max-processes",
        dest="max_processes",
        type=int,
        default=None,
        help="Maximum number of concurrent git processes.",
    )
    parser.add_argument(
        "--read-only",
        dest="read_only",
        action="store_true",
        help="Refuse pushes (git-receive-pack).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        dest="verbose",
        action="store_true",
        help="Log debug messages.",
    )
    parser.add_argument(
        "root",
        nargs="?",
        default=os.getcwd(),
        help="Directory containing the repositories to serve.",
    )
    return parser


def services_from_args(args: argparse.Namespace) -> frozenset[Service]:
    """Return the services enabled by the command-line options."""
    if args.read_only:
        return frozenset([Service.UPLOAD_PACK])
    return DEFAULT_SERVICES


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for starting an HTTP git server."""
    parser = make_argument_parser("Serve git repositories over HTTP (WSGI).")
    args = parser.parse_args(argv)

    log_utils.default_logging_config(verbose=args.verbose)
    backend = GitBackend(
        args.root, git_command=args.git, max_processes=args.max_processes
    )
    app = make_wsgi_chain(backend, services=services_from_args(args))
    server = make_server(
        args.listen_address,
        args.port,
        app,
        handler_class=WSGIRequestHandlerLogger,
        server_class=WSGIServerLogger,
    )
    logger.info(
        "Listening for HTTP connections on %s:%d",
        args.listen_address,
        args.port,
    )
    logger.info("Serving repositories below %s", backend.root)
    server.serve_forever()


if __name__ == "__main__":
    main(sys.argv[1:])
