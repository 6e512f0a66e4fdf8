# Copyright 2022 Cisco Systems, Inc. and/or its affiliates.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""The `ktunnel.logging` module provides logging capabilities to the ktunnel package and its dependencies.

Logging is implemented on top of the
[loguru](https://loguru.readthedocs.io/en/stable/) library. Messages emitted through
the standard library `logging` module by `kubernetes_asyncio` and `aiohttp` are
intercepted and routed through loguru so that a single filter governs all output.
"""
from __future__ import annotations

import logging
import sys
import traceback
from typing import Optional

import loguru

__all__ = (
    "Mixin",
    "Filter",
    "Formatter",
    "InterceptHandler",
    "logger",
    "reset_to_defaults",
    "set_colors",
    "set_level",
)

# Alias the loguru default logger
logger = loguru.logger

INTERCEPTED_LOGGERS = ("kubernetes_asyncio", "aiohttp")


class Mixin:
    """Provides a convenience interface for accessing the logger as a property.

    Objects that log with a `component` are tagged in the log output with the
    class name so that messages from the cluster context and the readiness poller
    can be told apart.
    """

    @property
    def logger(self) -> loguru.Logger:
        """Return the ktunnel package logger bound to the class name."""
        return logger.bind(component=self.__class__.__name__)


class Filter:
    """The level of messages that are to be outputted via logging.

    NOTE: The level on the sink needs to be set to 0.
    """

    def __init__(self, level="INFO") -> None:  # noqa: D107
        self.level = level

    def __call__(self, record) -> bool:  # noqa: D102
        levelno = logger.level(self.level).no
        return record["level"].no >= levelno


class InterceptHandler(logging.Handler):
    """A logging handler that forwards messages from Python stdlib logging to loguru."""

    def emit(self, record) -> None:
        """Emit a log record from Python stdlib logging facilities into loguru."""
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            component=record.name
        ).log(level, record.getMessage())


DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <magenta>{extra[component]}</magenta> - <level>{message}</level>"
    "{extra[traceback]}"
)


class Formatter:
    """A logging formatter that annotates records with the emitting component."""

    def __call__(self, record: dict) -> str:  # noqa: D107
        extra = record["extra"]

        if extra.get("with_traceback", False):
            extra["traceback"] = "\n" + "".join(traceback.format_stack())
        else:
            extra["traceback"] = ""

        # Respect an explicit component
        if "component" not in extra:
            extra["component"] = "ktunnel"

        # Namespace and sidecar name are bound by the provisioning helpers
        if namespace := extra.get("namespace"):
            extra["component"] = f"{extra['component']}[{namespace}]"

        return DEFAULT_FORMAT + "\n{exception}"


DEFAULT_FILTER = Filter("INFO")
DEFAULT_FORMATTER = Formatter()


DEFAULT_STDERR_HANDLER = {
    "sink": sys.stderr,
    "filter": DEFAULT_FILTER,
    "level": 0,
    "format": DEFAULT_FORMATTER,
    "backtrace": True,
    "diagnose": True,
}

DEFAULT_HANDLERS = [
    DEFAULT_STDERR_HANDLER,
]


def set_level(level: str) -> None:
    """Set the logging threshold to the given level for all log handlers."""
    DEFAULT_FILTER.level = level


def set_colors(colors: Optional[bool]) -> None:
    """Set whether or not log messages should be outputted in ANSI color.

    Args:
        colors: Whether or not to color log output. `None` lets loguru decide based on the terminal.
    """
    DEFAULT_STDERR_HANDLER["colorize"] = colors
    loguru.logger.remove()
    loguru.logger.configure(handlers=DEFAULT_HANDLERS)


def reset_to_defaults() -> None:
    """Reset the logging subsystem to the default configuration."""
    DEFAULT_FILTER.level = "INFO"
    DEFAULT_STDERR_HANDLER["colorize"] = None

    loguru.logger.remove()
    loguru.logger.configure(handlers=DEFAULT_HANDLERS)

    # Intercept messages from the Kubernetes client stack
    for name in INTERCEPTED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        if not any(isinstance(h, InterceptHandler) for h in stdlib_logger.handlers):
            stdlib_logger.addHandler(InterceptHandler())


reset_to_defaults()
