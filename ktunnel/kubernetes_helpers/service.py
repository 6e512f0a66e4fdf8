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

import re
from typing import Iterable

from kubernetes_asyncio.client import (
    V1ObjectMeta,
    V1Service,
    V1ServicePort,
    V1ServiceSpec,
)

from ktunnel.context import ClusterContext, cluster_api_errors
from ktunnel.logging import logger
from .util import identity_labels

PORT_MAPPING_REGEX = re.compile(
    r"^(?P<port>\d{1,5})(?::(?P<target_port>\d{1,5}))?(?:/(?P<protocol>tcp|udp|sctp))?$",
    re.IGNORECASE,
)


class ServiceHelper:
    @classmethod
    def build(
        cls, namespace: str, name: str, ports: Iterable[V1ServicePort]
    ) -> V1Service:
        """Build a Service routing the given ports to the pods of the sidecar `name`."""
        return V1Service(
            api_version="v1",
            kind="Service",
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            spec=V1ServiceSpec(
                ports=list(ports),
                selector=identity_labels(name),
            ),
        )

    @classmethod
    def parse_port(cls, mapping: str) -> V1ServicePort:
        """Parse a `PORT[:TARGET_PORT][/PROTOCOL]` mapping into a service port.

        The target port defaults to the port and the protocol to TCP. The port is
        named after its protocol and number (e.g. `tcp-8080`).

        Raises:
            ValueError: Raised if the mapping is malformed or a port is out of range.
        """
        match = PORT_MAPPING_REGEX.match(mapping.strip())
        if not match:
            raise ValueError(
                f"invalid port mapping '{mapping}': expected PORT[:TARGET_PORT][/PROTOCOL]"
            )

        port = int(match.group("port"))
        target_port = int(match.group("target_port") or port)
        for value in (port, target_port):
            if not 0 < value < 65536:
                raise ValueError(f"invalid port mapping '{mapping}': port {value} out of range")

        protocol = (match.group("protocol") or "tcp").upper()
        return V1ServicePort(
            name=f"{protocol.lower()}-{port}",
            port=port,
            target_port=target_port,
            protocol=protocol,
        )

    @classmethod
    async def create(cls, context: ClusterContext, service: V1Service) -> V1Service:
        clients = await context.clients()
        logger.info(
            f'creating service "{service.metadata.name}" in namespace "{clients.namespace}"'
        )
        with cluster_api_errors(f'create service "{service.metadata.name}"'):
            return await clients.services.create_namespaced_service(
                namespace=clients.namespace, body=service
            )

