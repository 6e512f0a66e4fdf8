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

"""Provision tunnel sidecars and wait for them to come up.

Two provisioning flows are supported:

* `provision_sidecar` / `expose` create a dedicated Deployment running the
  sidecar together with a Service that routes to it.
* `inject_sidecar` adds the sidecar container to an existing Deployment,
  unless a container running the sidecar image is already present.

Both flows capture the readiness threshold before submitting anything to the
cluster and hand back `ReadinessCriteria` for the readiness poller.
"""
from __future__ import annotations

from typing import Iterable, NamedTuple, Optional, Union

from kubernetes_asyncio.client import (
    V1Deployment,
    V1Pod,
    V1PodTemplateSpec,
    V1Service,
    V1ServicePort,
)

from ktunnel.configuration import DEFAULT_IMAGE, DEFAULT_POLL_INTERVAL, DEFAULT_PORT
from ktunnel.context import ClusterContext
from ktunnel.kubernetes_helpers import (
    CONTAINER_NAME,
    ContainerHelper,
    DeploymentHelper,
    ServiceHelper,
    find_container,
    get_containers,
)
from ktunnel.logging import logger
from ktunnel.readiness import (
    DurationDescriptor,
    ReadinessCriteria,
    ReadinessPoller,
    readiness_threshold,
)

__all__ = [
    "ProvisionedSidecar",
    "check_sidecar_present",
    "expose",
    "inject_sidecar",
    "provision_sidecar",
]


class ProvisionedSidecar(NamedTuple):
    """The objects submitted for a sidecar and the criteria for awaiting its readiness."""

    deployment: V1Deployment
    service: V1Service
    criteria: ReadinessCriteria


def check_sidecar_present(
    pod_template: Union[V1PodTemplateSpec, V1Deployment, V1Pod], image: str
) -> bool:
    """Return True if the workload already runs a container with exactly the given image."""
    return ContainerHelper.has_sidecar(get_containers(pod_template), image)


async def provision_sidecar(
    context: ClusterContext,
    name: str,
    port: int = DEFAULT_PORT,
    image: str = DEFAULT_IMAGE,
    replicas: int = 1,
    *,
    ports: Optional[Iterable[V1ServicePort]] = None,
    verbose: Optional[bool] = None,
) -> ProvisionedSidecar:
    """Submit a sidecar Deployment and its Service to the namespace of the context.

    The Service exposes `ports`, or the sidecar port itself when none are given.
    The readiness threshold is captured before the Deployment is submitted.

    Raises:
        ConfigurationError: Raised if the cluster context cannot be initialized.
        ClusterAPIError: Raised if either submission fails.
    """
    namespace = context.namespace
    log = logger.bind(namespace=namespace)

    deployment = DeploymentHelper.build(
        namespace, name, port, image, replicas, verbose=verbose
    )
    if ports is None:
        ports = [
            V1ServicePort(name="tunnel", port=port, target_port=port, protocol="TCP")
        ]
    service = ServiceHelper.build(namespace, name, ports)

    criteria = ReadinessCriteria(
        name_prefix=name,
        created_after=readiness_threshold(),
        target_count=replicas,
    )
    log.debug(f"captured readiness threshold {criteria.created_after.isoformat()}")

    deployment = await DeploymentHelper.create(context, deployment)
    service = await ServiceHelper.create(context, service)
    log.info(f'provisioned sidecar "{name}" ({image}) listening on port {port}')

    return ProvisionedSidecar(deployment=deployment, service=service, criteria=criteria)


async def expose(
    context: ClusterContext,
    name: str,
    port: int = DEFAULT_PORT,
    image: str = DEFAULT_IMAGE,
    replicas: int = 1,
    *,
    ports: Optional[Iterable[V1ServicePort]] = None,
    verbose: Optional[bool] = None,
    interval: DurationDescriptor = DEFAULT_POLL_INTERVAL,
    timeout: Optional[DurationDescriptor] = None,
) -> ProvisionedSidecar:
    """Provision a sidecar and wait until its pods are running.

    Raises:
        ConfigurationError: Raised if the cluster context cannot be initialized.
        ClusterAPIError: Raised if a submission or a pod listing fails.
        ReadinessTimeoutError: Raised if the sidecar is not running within `timeout`.
    """
    provisioned = await provision_sidecar(
        context, name, port, image, replicas, ports=ports, verbose=verbose
    )
    await ReadinessPoller(
        context, provisioned.criteria, interval=interval, timeout=timeout
    ).start()
    return provisioned


async def inject_sidecar(
    context: ClusterContext,
    deployment_name: str,
    port: int = DEFAULT_PORT,
    image: str = DEFAULT_IMAGE,
    *,
    verbose: Optional[bool] = None,
) -> Optional[ReadinessCriteria]:
    """Add the tunnel sidecar to an existing Deployment.

    Returns the readiness criteria for the rolled out pods, or `None` when the
    Deployment already runs a container with the sidecar image.

    Raises:
        ValueError: Raised if the Deployment has a different container named like the sidecar.
        ConfigurationError: Raised if the cluster context cannot be initialized.
        ClusterAPIError: Raised if the Deployment cannot be read or patched.
    """
    log = logger.bind(namespace=context.namespace)
    deployment = await DeploymentHelper.read(context, deployment_name)

    if check_sidecar_present(deployment, image):
        log.info(
            f'deployment "{deployment_name}" already runs {image}, skipping sidecar injection'
        )
        return None

    if existing := find_container(deployment, CONTAINER_NAME):
        raise ValueError(
            f'deployment "{deployment_name}" already has a container named "{CONTAINER_NAME}" running {existing.image}'
        )

    criteria = ReadinessCriteria(
        name_prefix=deployment_name,
        created_after=readiness_threshold(),
        target_count=deployment.spec.replicas if deployment.spec.replicas is not None else 1,
    )

    DeploymentHelper.append_container(
        deployment, ContainerHelper.build(port, image, verbose=verbose)
    )
    await DeploymentHelper.patch(context, deployment)
    log.info(f'injected sidecar {image} into deployment "{deployment_name}"')

    return criteria
