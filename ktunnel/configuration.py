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

import pathlib
from typing import Optional

import pydantic
import pydantic_settings

from ktunnel.types import Duration

__all__ = [
    "DEFAULT_IMAGE",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_PORT",
    "TunnelSettings",
    "is_verbose",
    "set_verbose",
]

DEFAULT_IMAGE = "quay.io/omrikiei/ktunnel:latest"
DEFAULT_PORT = 28688
DEFAULT_POLL_INTERVAL = Duration("300ms")

_verbose = False


def set_verbose(verbose: bool) -> None:
    """Set the process-wide verbosity flag.

    When enabled, sidecar containers are launched with the diagnostic `-v` flag.
    """
    global _verbose
    _verbose = bool(verbose)


def is_verbose() -> bool:
    """Return the process-wide verbosity flag."""
    return _verbose


class TunnelSettings(pydantic_settings.BaseSettings):
    """Settings for provisioning tunnel sidecars, read from `KTUNNEL_*` environment variables."""

    namespace: str = pydantic.Field(
        "default",
        min_length=1,
        description="Kubernetes namespace in which the sidecar is provisioned.",
    )
    kubeconfig: Optional[pathlib.Path] = pydantic.Field(
        None,
        description="Path to the kubeconfig file. If `None`, use $KUBECONFIG or ~/.kube/config.",
    )
    context: Optional[str] = pydantic.Field(
        None, description="Name of the kubeconfig context to use."
    )
    image: str = pydantic.Field(
        DEFAULT_IMAGE, description="Container image of the tunnel sidecar."
    )
    port: int = pydantic.Field(
        DEFAULT_PORT,
        gt=0,
        lt=65536,
        description="Port the sidecar server listens on for tunnel connections.",
    )
    replicas: int = pydantic.Field(
        1, ge=1, description="Number of sidecar replicas to run."
    )
    verbose: bool = pydantic.Field(
        False, description="Append a diagnostic flag to the sidecar's launch arguments."
    )
    poll_interval: Duration = pydantic.Field(
        DEFAULT_POLL_INTERVAL,
        description="Fixed delay between pod listings while waiting for readiness.",
    )
    timeout: Optional[Duration] = pydantic.Field(
        None,
        description="Maximum time to wait for the sidecar to become ready. Wait forever when `None`.",
    )
    log_level: str = pydantic.Field("INFO", description="Logging threshold.")

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="KTUNNEL_",
        case_sensitive=False,
        extra="forbid",
        validate_assignment=True,
    )

    @pydantic.field_validator("poll_interval")
    @classmethod
    def _positive_interval(cls, value: Duration) -> Duration:
        if value.total_seconds() <= 0:
            raise ValueError("poll_interval must be greater than zero")
        return value

    @pydantic.field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: Optional[Duration]) -> Optional[Duration]:
        if value is not None and value.total_seconds() <= 0:
            raise ValueError("timeout must be greater than zero")
        return value

    @pydantic.field_validator("log_level")
    @classmethod
    def _upcase_log_level(cls, value: str) -> str:
        return value.upper()
