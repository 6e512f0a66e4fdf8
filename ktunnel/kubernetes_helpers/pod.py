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

import datetime
from typing import Optional

from kubernetes_asyncio.client import V1ObjectMeta, V1Pod, V1PodList, V1PodStatus

from ktunnel.context import ClusterContext, cluster_api_errors
from ktunnel.logging import logger

RUNNING_PHASE = "Running"


class PodHelper:
    @classmethod
    async def list_pods(cls, context: ClusterContext) -> list[V1Pod]:
        """List every pod in the namespace of the context.

        No label or field selector is applied, callers filter client side.
        """
        clients = await context.clients()
        with cluster_api_errors(f'list pods in namespace "{clients.namespace}"'):
            pod_list: V1PodList = await clients.pods.list_namespaced_pod(
                namespace=clients.namespace
            )
        return pod_list.items or []

    @classmethod
    def is_running(cls, pod: V1Pod) -> bool:
        status: Optional[V1PodStatus] = pod.status
        if status is None:
            return False

        logger.trace(f'pod "{pod.metadata.name}" is in phase {status.phase}')
        return status.phase == RUNNING_PHASE

    @classmethod
    def created_after(cls, pod: V1Pod, threshold: datetime.datetime) -> bool:
        """Return True if the pod was created strictly after `threshold`."""
        metadata: V1ObjectMeta = pod.metadata
        created_at: Optional[datetime.datetime] = metadata.creation_timestamp
        if created_at is None:
            return False

        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=datetime.timezone.utc)
        return created_at > threshold
