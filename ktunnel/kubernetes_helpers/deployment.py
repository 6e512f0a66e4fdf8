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

from typing import Optional

from kubernetes_asyncio.client import (
    V1Container,
    V1Deployment,
    V1DeploymentSpec,
    V1LabelSelector,
    V1ObjectMeta,
    V1PodSpec,
    V1PodTemplateSpec,
)

from ktunnel.context import ClusterContext, cluster_api_errors
from ktunnel.logging import logger
from .container import ContainerHelper
from .util import identity_labels

STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"


class DeploymentHelper:
    @classmethod
    def build(
        cls,
        namespace: str,
        name: str,
        port: int,
        image: str,
        replicas: int = 1,
        *,
        verbose: Optional[bool] = None,
    ) -> V1Deployment:
        """Build a Deployment running `replicas` copies of the tunnel sidecar.

        The identity labels of `name` are set on the Deployment, used as its
        selector and stamped on the pod template.
        """
        return V1Deployment(
            api_version="apps/v1",
            kind="Deployment",
            metadata=V1ObjectMeta(
                name=name,
                namespace=namespace,
                labels=identity_labels(name),
            ),
            spec=V1DeploymentSpec(
                replicas=replicas,
                selector=V1LabelSelector(match_labels=identity_labels(name)),
                template=V1PodTemplateSpec(
                    metadata=V1ObjectMeta(labels=identity_labels(name)),
                    spec=V1PodSpec(
                        containers=[
                            ContainerHelper.build(port, image, verbose=verbose)
                        ],
                    ),
                ),
            ),
        )

    @classmethod
    async def create(cls, context: ClusterContext, workload: V1Deployment) -> V1Deployment:
        clients = await context.clients()
        logger.info(
            f'creating deployment "{workload.metadata.name}" in namespace "{clients.namespace}"'
        )
        with cluster_api_errors(f'create deployment "{workload.metadata.name}"'):
            return await clients.deployments.create_namespaced_deployment(
                namespace=clients.namespace, body=workload
            )

    @classmethod
    async def read(cls, context: ClusterContext, name: str) -> V1Deployment:
        clients = await context.clients()
        logger.debug(f'reading deployment "{name}" in namespace "{clients.namespace}"')
        with cluster_api_errors(f'read deployment "{name}"'):
            return await clients.deployments.read_namespaced_deployment(
                name=name, namespace=clients.namespace
            )

    @classmethod
    async def patch(cls, context: ClusterContext, workload: V1Deployment) -> V1Deployment:
        clients = await context.clients()
        name = workload.metadata.name
        logger.debug(f'patching deployment "{name}" in namespace "{clients.namespace}"')
        with cluster_api_errors(f'patch deployment "{name}"'):
            return await clients.deployments.patch_namespaced_deployment(
                name=name,
                namespace=clients.namespace,
                body=workload,
                _content_type=STRATEGIC_MERGE_PATCH,
            )

    @classmethod
    def append_container(cls, workload: V1Deployment, container: V1Container) -> None:
        """Append a container to the pod template of the Deployment in place."""
        pod_spec: V1PodSpec = workload.spec.template.spec
        pod_spec.containers = [*(pod_spec.containers or []), container]
