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

from typing import Optional, Union

from kubernetes_asyncio.client import (
    V1Container,
    V1Deployment,
    V1Pod,
    V1PodTemplateSpec,
)

NAME_LABEL = "app.kubernetes.io/name"
INSTANCE_LABEL = "app.kubernetes.io/instance"


def identity_labels(name: str) -> dict[str, str]:
    """Return the labels identifying the sidecar workload `name`.

    The same labels are set on the Deployment and its pod template and used as
    the selector of both the Deployment and the Service.
    """
    return {
        NAME_LABEL: name,
        INSTANCE_LABEL: name,
    }


def get_containers(
    workload: Union[V1Pod, V1PodTemplateSpec, V1Deployment]
) -> list[V1Container]:
    if isinstance(workload, (V1Pod, V1PodTemplateSpec)):
        spec = workload.spec
    else:
        spec = workload.spec.template.spec

    return (spec.containers if spec else None) or []


def find_container(
    workload: Union[V1Pod, V1PodTemplateSpec, V1Deployment], name: str
) -> Optional[V1Container]:
    return next(
        iter((c for c in get_containers(workload=workload) if c.name == name)), None
    )
