# log_utils.py -- Logging utilities for gitgateway
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

"""Logging utilities for gitgateway.

The gateway can be embedded as a WSGI or aiohttp application inside a larger
server, in which case the host decides where log records go. To keep the
package silent until somebody configures logging, a no-op handler is attached
to the top-level ``gitgateway`` logger at import time.

The command-line entry points call :func:`default_logging_config`, which
removes that handler and installs a basic stderr configuration, or a debug
trace when ``GIT_TRACE`` is set.
"""

import logging
import os
import sys
from typing import Optional

__all__ = [
    "default_logging_config",
    "getLogger",
    "remove_null_handler",
]

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_GATEWAY_LOGGER = getLogger("gitgateway")
_GATEWAY_LOGGER.addHandler(_NULL_HANDLER)


def _get_trace_target() -> Optional[str]:
    """Get the trace target from the GIT_TRACE environment variable.

    Returns:
        - None if tracing is disabled
        - "stderr" for the values "1", "2" and "true"
        - an absolute file or directory path
    """
    trace_value = os.environ.get("GIT_TRACE", "")
    if not trace_value or trace_value.lower() in ("0", "false"):
        return None
    if trace_value.lower() in ("1", "2", "true"):
        return "stderr"
    if os.path.isabs(trace_value):
        return trace_value
    # Relative paths and file descriptor numbers are not supported.
    return None


def _configure_trace(target: str) -> bool:
    if target == "stderr":
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=TRACE_FORMAT)
        return True
    if os.path.isdir(target):
        filename = os.path.join(target, f"gitgateway-trace.{os.getpid()}")
    else:
        filename = target
    try:
        logging.basicConfig(
            level=logging.DEBUG, filename=filename, filemode="a", format=TRACE_FORMAT
        )
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open GIT_TRACE file {target}: {e}\n")
        return False
    return True


def default_logging_config(verbose: bool = False) -> None:
    """Set up the default gitgateway loggers.

    Args:
      verbose: Log at DEBUG rather than INFO level.

    If GIT_TRACE is set to "1", "2" or "true", debug output goes to stderr;
    if it is an absolute path, debug output is appended to that file (or to a
    per-process file when the path is a directory).
    """
    remove_null_handler()

    target = _get_trace_target()
    if target is not None and _configure_trace(target):
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        stream=sys.stderr,
        format=DEFAULT_FORMAT,
    )


def remove_null_handler() -> None:
    """Remove the null handler from the gitgateway loggers.

    If a caller wants to set up logging using something other than
    default_logging_config, calling this function first is a minor optimization
    to avoid the overhead of using the _NullHandler.
    """
    _GATEWAY_LOGGER.removeHandler(_NULL_HANDLER)
