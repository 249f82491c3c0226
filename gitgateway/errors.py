# errors.py -- errors for gitgateway
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

"""gitgateway-related exception classes."""

# Please do not add more errors here, but instead add them close to the code
# that raises the error.

__all__ = [
    "GitProtocolError",
    "HangupException",
    "InvalidRepositoryPath",
    "NotGitRepository",
]


class GitProtocolError(Exception):
    """Git protocol exception."""

    def __init__(self, *args: object) -> None:
        """Initialize a GitProtocolError.

        Args:
            *args: Error message and additional positional arguments.
        """
        Exception.__init__(self, *args)

    def __eq__(self, other: object) -> bool:
        """Check equality between GitProtocolError instances."""
        return isinstance(other, type(self)) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class HangupException(GitProtocolError):
    """Hangup exception."""

    def __init__(self) -> None:
        """Initialize a HangupException."""
        super().__init__("The remote server unexpectedly closed the connection.")


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Initialize a NotGitRepository exception.

        Args:
            *args: Error message and additional positional arguments.
            **kwargs: Additional keyword arguments.
        """
        Exception.__init__(self, *args, **kwargs)


class InvalidRepositoryPath(Exception):
    """A repository identifier from a URL is not safe to use as a path."""

    def __init__(self, repo_id: str, reason: str) -> None:
        """Initialize an InvalidRepositoryPath exception.

        Args:
            repo_id: The rejected repository identifier.
            reason: Why the identifier was rejected.
        """
        self.repo_id = repo_id
        self.reason = reason
        Exception.__init__(self, f"Invalid repository path {repo_id!r}: {reason}")
