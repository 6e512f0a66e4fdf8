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

import importlib.metadata
from typing import Optional


def __get_version() -> Optional[str]:
    try:
        return importlib.metadata.version("ktunnelx")
    except importlib.metadata.PackageNotFoundError:
        return None


__version__ = __get_version() or "0.0.0"

# Promote all symbols from submodules to the top-level package
from .logging import *
from .errors import *
from .types import *
from .configuration import *
from .context import *
from .readiness import *
from .sidecar import *
