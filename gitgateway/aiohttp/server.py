# server.py -- aiohttp smart-http gateway
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

"""aiohttp server support.

The routing table, repository lookup and the backend are shared with the
WSGI gateway in :mod:`gitgateway.web`; only the I/O differs. RPC processes
are driven with :mod:`asyncio` subprocesses, other backend operations run
in a worker thread.
"""

import asyncio
import os
import stat
import sys
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import Any

from aiohttp import web
from aiohttp.http_exceptions import HttpProcessingError

from .. import log_utils
from ..backend import (
    Backend,
    BackendBusy,
    BackendError,
    GitBackend,
    MalformedRequestBody,
)
from ..errors import InvalidRepositoryPath, NotGitRepository
from ..protocol import PayloadTooLarge, Service, service_announcement
from ..routing import Matched, Router, WrongMethod, build_router
from ..web import (
    DEFAULT_SERVICES,
    cache_headers,
    make_argument_parser,
    services_from_args,
)

logger = log_utils.getLogger(__name__)

# Application keys for type-safe access to app state
BACKEND_KEY = web.AppKey("backend", Backend)
SERVICES_KEY = web.AppKey("services", frozenset)

# Encodings aiohttp decodes for us before the body reaches a handler
_REQUEST_ENCODINGS = ("", "identity", "gzip", "deflate")


def _empty(status: int, headers: dict[str, str] | None = None) -> web.Response:
    return web.Response(status=status, headers=headers)


def _service(request: web.Request, name: str | None) -> Service | None:
    service = Service.from_name(name)
    if service not in request.app[SERVICES_KEY]:
        return None
    return service


async def send_file(
    request: web.Request, path: str, headers: dict[str, str]
) -> web.StreamResponse:
    """Send a file from the repository, with support for range requests.

    Args:
      request: aiohttp request object
      path: Path of the file to send
      headers: Headers to send
    Returns: Response streaming the file, or an empty 404 response
    """
    try:
        st = await asyncio.to_thread(os.stat, path)
    except (FileNotFoundError, NotADirectoryError):
        logger.info("Not found: %s", path)
        return _empty(404)
    except OSError as e:
        logger.error("Error opening %s: %s", path, e)
        return _empty(500)
    if not stat.S_ISREG(st.st_mode):
        logger.info("Not a regular file: %s", path)
        return _empty(404)
    return web.FileResponse(path, chunk_size=10240, headers=headers)


def _file_path(repo_path: str, match: Matched[Any]) -> str:
    return os.path.join(repo_path, *match.suffix.split("/"))


def _static_handler(
    content_type: str,
) -> Callable[
    [web.Request, Backend, Matched[Any], str], Awaitable[web.StreamResponse]
]:
    async def handler(
        request: web.Request, backend: Backend, match: Matched[Any], repo_path: str
    ) -> web.StreamResponse:
        headers = {"Content-Type": content_type}
        headers.update(cache_headers(match.content_class))
        path = _file_path(repo_path, match)
        logger.info("Sending %s file %s", content_type, path)
        return await send_file(request, path, headers)

    return handler


get_text_file = _static_handler("text/plain")
get_info_packs = _static_handler("text/plain; charset=utf-8")
get_loose_object = _static_handler("application/x-git-loose-object")
get_pack_file = _static_handler("application/x-git-packed-objects")
get_idx_file = _static_handler("application/x-git-packed-objects-toc")


async def get_info_refs(
    request: web.Request, backend: Backend, match: Matched[Any], repo_path: str
) -> web.StreamResponse:
    """Handle request for /info/refs.

    The backend's blocking operations run in a worker thread.

    Args:
      request: aiohttp request object
      backend: The git backend
      match: The route match for the request
      repo_path: Path of the repository
    Returns: Response with the smart ref advertisement or the dumb info/refs
    """
    service_name = request.query.get("service")
    if not service_name:
        logger.info("Sending dumb info/refs")
        try:
            await asyncio.to_thread(backend.update_server_info, repo_path)
        except BackendBusy as e:
            logger.warning("Unavailable: %s", e)
            return _empty(503, {"Retry-After": "1"})
        except BackendError as e:
            logger.error("Error: %s", e)
            return _empty(500)
        headers = {"Content-Type": "text/plain"}
        headers.update(cache_headers(match.content_class))
        return await send_file(request, _file_path(repo_path, match), headers)

    service = _service(request, service_name)
    if service is None:
        logger.info("Forbidden: unsupported service %s", service_name)
        return _empty(403)
    try:
        refs = await asyncio.to_thread(
            backend.advertise_refs,
            service,
            repo_path,
            git_protocol=request.headers.get("Git-Protocol"),
        )
        body = service_announcement(service) + refs
    except BackendBusy as e:
        logger.warning("Unavailable: %s", e)
        return _empty(503, {"Retry-After": "1"})
    except (BackendError, PayloadTooLarge) as e:
        logger.error("Error: %s", e)
        return _empty(500)
    headers = {"Content-Type": service.advertisement_content_type}
    headers.update(cache_headers(match.content_class))
    return web.Response(status=200, headers=headers, body=body)


async def _request_body(request: web.Request) -> AsyncIterator[bytes]:
    try:
        async for chunk in request.content.iter_any():
            yield chunk
    except (web.RequestPayloadError, HttpProcessingError) as e:
        raise MalformedRequestBody(str(e)) from e


async def handle_service_request(
    request: web.Request, backend: Backend, match: Matched[Any], repo_path: str
) -> web.StreamResponse:
    """Handle a git service request (upload-pack or receive-pack).

    The request body is fed to the backend process while its output is
    streamed to the client. If either side fails, or the client goes away,
    the process is killed.

    Args:
      request: aiohttp request object
      backend: The git backend
      match: The route match for the request
      repo_path: Path of the repository
    Returns: Response with service result
    """
    service = _service(request, match.suffix)
    if service is None:
        logger.info("Forbidden: unsupported service %s", match.suffix)
        return _empty(403)
    encoding = request.headers.get("Content-Encoding", "").lower()
    if encoding not in _REQUEST_ENCODINGS:
        logger.warning("Bad request: unsupported content encoding %s", encoding)
        return _empty(400)
    logger.info("Handling service request for %s", service.value)
    try:
        proc = await backend.stateless_rpc_async(
            service,
            repo_path,
            _request_body(request),
            git_protocol=request.headers.get("Git-Protocol"),
        )
    except BackendBusy as e:
        logger.warning("Unavailable: %s", e)
        return _empty(503, {"Retry-After": "1"})
    except BackendError as e:
        logger.error("Error: %s", e)
        return _empty(500)

    headers = {"Content-Type": service.result_content_type}
    headers.update(cache_headers(match.content_class))
    response = web.StreamResponse(status=200, headers=headers)
    try:
        await response.prepare(request)
        async for chunk in proc:
            await response.write(chunk)
        await response.write_eof()
    except ConnectionResetError:
        logger.info("Client went away during %s", service.value)
    finally:
        await proc.aclose()
    return response


AiohttpHandler = Callable[
    [web.Request, Backend, Matched[Any], str], Awaitable[web.StreamResponse]
]

ROUTER: Router[AiohttpHandler] = build_router(
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


async def dispatch(request: web.Request) -> web.StreamResponse:
    """Route a request to its handler.

    Args:
      request: aiohttp request object
    Returns: The handler's response, or an empty 404 or 405 response
    """
    logger.info("%s %s", request.method, request.path)
    result = ROUTER.match(request.method, request.path)
    if isinstance(result, WrongMethod):
        logger.info("Method %s not allowed for %s", request.method, request.path)
        return _empty(405, {"Allow": result.allowed})
    if not isinstance(result, Matched):
        logger.info("Not found: no route for %s", request.path)
        return _empty(404)
    backend = request.app[BACKEND_KEY]
    try:
        repo_path = backend.open_repository(result.repository)
    except (InvalidRepositoryPath, NotGitRepository) as e:
        logger.info("Not found: %s", e)
        return _empty(404)
    return await result.handler(request, backend, result, repo_path)


def create_app(
    backend: Backend, services: Iterable[Service] | None = None
) -> web.Application:
    """Create an aiohttp application serving the repositories of a backend.

    Args:
      backend: Backend object for git operations
      services: Services clients may use; defaults to all of them
    Returns: Configured aiohttp Application
    """
    app = web.Application()
    app[BACKEND_KEY] = backend
    app[SERVICES_KEY] = frozenset(DEFAULT_SERVICES if services is None else services)
    app.router.add_route("*", "/{path:.*}", dispatch)
    return app


def main(argv: list[str] | None = None) -> None:
    """Entry point for starting an HTTP git server."""
    parser = make_argument_parser("Serve git repositories over HTTP (aiohttp).")
    args = parser.parse_args(argv)

    log_utils.default_logging_config(verbose=args.verbose)
    backend = GitBackend(
        args.root, git_command=args.git, max_processes=args.max_processes
    )
    app = create_app(backend, services=services_from_args(args))
    logger.info(
        "Listening for HTTP connections on %s:%d",
        args.listen_address,
        args.port,
    )
    logger.info("Serving repositories below %s", backend.root)
    web.run_app(app, port=args.port, host=args.listen_address, print=None)


if __name__ == "__main__":
    main(sys.argv[1:])
