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

from __future__ import annotations

import datetime
from typing import Optional

__all__ = (
    "BaseError",
    "ClusterAPIError",
    "ConfigurationError",
    "ReadinessTimeoutError",
)


class BaseError(RuntimeError):
    """The base class for all errors in the ktunnel package."""

    def __init__(
        self,
        message: str = "",
        reason: Optional[str] = None,
        *args,
    ) -> None:
        super().__init__(message, *args)
        self._reason = reason
        self._created_at = datetime.datetime.now()

    @property
    def reason(self) -> Optional[str]:
        """A supplemental reason explaining why the error occurred."""
        return self._reason

    @property
    def created_at(self) -> datetime.datetime:
        """The date and time when the error occurred."""
        return self._created_at


class ConfigurationError(BaseError):
    """Cluster credentials could not be resolved or the API client could not be constructed."""


class ClusterAPIError(BaseError):
    """A call against the Kubernetes API failed.

    The `status` attribute holds the HTTP status code when the API server
    answered, and is `None` for transport level failures.
    """

    def __init__(
        self,
        message: str = "",
        reason: Optional[str] = None,
        *args,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, reason, *args)
        self.status = status


class ReadinessTimeoutError(BaseError):
    """The sidecar pods did not become ready before the deadline expired."""
