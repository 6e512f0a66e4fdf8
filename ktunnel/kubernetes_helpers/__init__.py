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

from .container import (
    CONTAINER_NAME,
    CPU_LIMIT_MILLICORES,
    CPU_REQUEST_MILLICORES,
    MEMORY_LIMIT_BYTES,
    MEMORY_REQUEST_BYTES,
    ContainerHelper,
)
from .deployment import DeploymentHelper
from .pod import PodHelper
from .service import ServiceHelper
from .util import (
    find_container,
    get_containers,
    identity_labels,
)
