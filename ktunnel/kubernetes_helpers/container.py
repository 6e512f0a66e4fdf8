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

from typing import Iterable, Optional

from kubernetes_asyncio.client import V1Container, V1ResourceRequirements

from ktunnel.configuration import is_verbose

CONTAINER_NAME = "ktunnel"
ENTRYPOINT = "/ktunnel/ktunnel"

# Fixed resource policy for injected sidecars (decimal units)
CPU_REQUEST_MILLICORES = 500
CPU_LIMIT_MILLICORES = 1000
MEMORY_REQUEST_BYTES = 100 * 1000**2
MEMORY_LIMIT_BYTES = 1000**3


def _millicores(value: int) -> str:
    return f"{value}m"


def _decimal_bytes(value: int) -> str:
    for suffix, scale in (("G", 1000**3), ("M", 1000**2), ("k", 1000)):
        if value % scale == 0:
            return f"{value // scale}{suffix}"
    return str(value)


class ContainerHelper:
    @classmethod
    def build_args(cls, port: int, *, verbose: Optional[bool] = None) -> list[str]:
        """Return the launch arguments of the sidecar server listening on `port`.

        When `verbose` is `None` the process-wide verbosity flag is consulted.
        """
        if verbose is None:
            verbose = is_verbose()

        args = ["server", "-p", str(port)]
        if verbose:
            args.append("-v")
        return args

    @classmethod
    def build_resource_requirements(cls) -> V1ResourceRequirements:
        return V1ResourceRequirements(
            requests={
                "cpu": _millicores(CPU_REQUEST_MILLICORES),
                "memory": _decimal_bytes(MEMORY_REQUEST_BYTES),
            },
            limits={
                "cpu": _millicores(CPU_LIMIT_MILLICORES),
                "memory": _decimal_bytes(MEMORY_LIMIT_BYTES),
            },
        )

    @classmethod
    def build(
        cls, port: int, image: str, *, verbose: Optional[bool] = None
    ) -> V1Container:
        """Build the tunnel sidecar container.

        The builder does not validate its input and returns a new object on every call.

        Args:
            port: The port the sidecar server listens on.
            image: The container image reference of the sidecar.
            verbose: Whether to launch the server with diagnostic output. Defaults to
                the process-wide verbosity flag.
        """
        return V1Container(
            name=CONTAINER_NAME,
            image=image,
            command=[ENTRYPOINT],
            args=cls.build_args(port, verbose=verbose),
            resources=cls.build_resource_requirements(),
        )

    @classmethod
    def has_sidecar(
        cls, containers: Optional[Iterable[V1Container]], image: str
    ) -> bool:
        """Return True if any container runs exactly the given image reference."""
        return any(c.image == image for c in containers or [])
