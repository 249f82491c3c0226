# routing.py -- Map request paths to git HTTP handlers
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

"""Routing of git HTTP requests.

Routes are evaluated in the order they were registered. The first route
whose pattern matches the path wins, whatever its method: a request using
another method gets :class:`WrongMethod` rather than falling through to a
later route. Every pattern has exactly one capture group, the repository
identifier.
"""

__all__ = [
    "DEFAULT_ROUTES",
    "NO_MATCH",
    "ContentClass",
    "Matched",
    "NoMatch",
    "Route",
    "RouteMatch",
    "Router",
    "WrongMethod",
    "build_router",
    "check_repository_id",
]

import enum
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from .errors import InvalidRepositoryPath

H = TypeVar("H")


class ContentClass(enum.Enum):
    """Whether the content behind a route may change under the same URL."""

    MUTABLE = "mutable"
    IMMUTABLE = "immutable"


@dataclass(frozen=True)
class Route(Generic[H]):
    """A single entry of the routing table."""

    method: str
    pattern: re.Pattern[str]
    handler: H
    content_class: ContentClass


@dataclass(frozen=True)
class Matched(Generic[H]):
    """A request that was matched to a route.

    Attributes:
      route: The route that matched.
      repository: The repository identifier captured from the path.
      sub_path: The path relative to the project root.
      suffix: The part of the path following the repository identifier.
    """

    route: Route[H]
    repository: str
    sub_path: str
    suffix: str

    @property
    def handler(self) -> H:
        return self.route.handler

    @property
    def content_class(self) -> ContentClass:
        return self.route.content_class


@dataclass(frozen=True)
class WrongMethod(Generic[H]):
    """The path matched a route that expects a different method."""

    route: Route[H]
    path: str

    @property
    def allowed(self) -> str:
        return self.route.method


class NoMatch:
    """No route matched the path."""

    def __repr__(self) -> str:
        return "NO_MATCH"


NO_MATCH = NoMatch()

RouteMatch = Union[Matched[H], WrongMethod[H], NoMatch]


class Router(Generic[H]):
    """An immutable, ordered table of routes."""

    def __init__(self, routes: Iterable[Route[H]]) -> None:
        """Initialize a Router.

        Args:
          routes: Routes in the order they should be tried.
        """
        self.routes: tuple[Route[H], ...] = tuple(routes)
        for route in self.routes:
            if route.pattern.groups != 1:
                raise ValueError(
                    f"Route pattern {route.pattern.pattern!r} must have exactly "
                    "one capture group"
                )

    def match(self, method: str, path: str) -> "RouteMatch[H]":
        """Find the route for a request.

        Args:
          method: HTTP method of the request
          path: Decoded URL path of the request, starting with a slash
        Returns: Matched, WrongMethod or NO_MATCH
        """
        for route in self.routes:
            mat = route.pattern.fullmatch(path)
            if mat is None:
                continue
            if route.method != method:
                return WrongMethod(route, path)
            return Matched(
                route,
                repository=mat.group(1),
                sub_path=path[1:],
                suffix=path[mat.end(1) + 1 :],
            )
        return NO_MATCH


# (method, pattern, handler name, content class); order matters.
DEFAULT_ROUTES: tuple[tuple[str, str, str, ContentClass], ...] = (
    ("GET", r"^/(.+)/HEAD$", "head", ContentClass.MUTABLE),
    ("GET", r"^/(.+)/info/refs$", "info_refs", ContentClass.MUTABLE),
    ("GET", r"^/(.+)/objects/info/alternates$", "text_file", ContentClass.MUTABLE),
    (
        "GET",
        r"^/(.+)/objects/info/http-alternates$",
        "text_file",
        ContentClass.MUTABLE,
    ),
    ("GET", r"^/(.+)/objects/info/packs$", "info_packs", ContentClass.MUTABLE),
    (
        "GET",
        r"^/(.+)/objects/[0-9a-f]{2}/[0-9a-f]{38}$",
        "loose_object",
        ContentClass.IMMUTABLE,
    ),
    (
        "GET",
        r"^/(.+)/objects/pack/pack-[0-9a-f]{40}\.pack$",
        "pack_file",
        ContentClass.IMMUTABLE,
    ),
    (
        "GET",
        r"^/(.+)/objects/pack/pack-[0-9a-f]{40}\.idx$",
        "idx_file",
        ContentClass.IMMUTABLE,
    ),
    ("POST", r"^/(.+)/git-upload-pack$", "service", ContentClass.MUTABLE),
    ("POST", r"^/(.+)/git-receive-pack$", "service", ContentClass.MUTABLE),
)


def build_router(
    handlers: Mapping[str, H],
    table: Iterable[tuple[str, str, str, ContentClass]] = DEFAULT_ROUTES,
) -> Router[H]:
    """Bind a routing table to concrete handlers.

    Args:
      handlers: Dictionary mapping handler names to handlers
      table: Routing table to bind; defaults to DEFAULT_ROUTES
    Returns: A Router
    Raises:
      KeyError: if the table names a handler missing from handlers
    """
    return Router(
        Route(method, re.compile(pattern), handlers[name], content_class)
        for method, pattern, name, content_class in table
    )


_SEGMENT_RE = re.compile(r"[A-Za-z0-9._~+@-]+")


def check_repository_id(repo_id: str) -> str:
    """Check that a repository identifier is safe to use as a relative path.

    Args:
      repo_id: Repository identifier captured from a URL
    Returns: The identifier, unchanged
    Raises:
      InvalidRepositoryPath: if the identifier could escape the project root
        or be mistaken for a command-line option
    """
    if not repo_id:
        raise InvalidRepositoryPath(repo_id, "empty")
    if repo_id.startswith("/") or "\\" in repo_id or "\0" in repo_id:
        raise InvalidRepositoryPath(repo_id, "not a relative path")
    if repo_id.startswith("-"):
        raise InvalidRepositoryPath(repo_id, "starts with a dash")
    for segment in repo_id.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidRepositoryPath(repo_id, f"invalid segment {segment!r}")
        if not _SEGMENT_RE.fullmatch(segment):
            raise InvalidRepositoryPath(repo_id, "unexpected characters")
    return repo_id
