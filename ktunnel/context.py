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

"""Namespace scoped access to the Kubernetes API.

A `ClusterContext` is constructed explicitly for one namespace and handed to
the helpers that need to talk to the cluster. Credentials are resolved and the
API handles are built on first use, exactly once, even when several tasks race
to use the context. Programs that work against several namespaces construct
one context per namespace.
"""
from __future__ import annotations

import asyncio
import contextlib
import os
import pathlib
from typing import Iterator, NamedTuple, Optional, Union

import aiohttp
import kubernetes_asyncio.client
import kubernetes_asyncio.config
from kubernetes_asyncio.client import ApiException, AppsV1Api, CoreV1Api

from ktunnel.configuration import TunnelSettings
from ktunnel.errors import ClusterAPIError, ConfigurationError
from ktunnel.logging import Mixin

__all__ = ["ClusterClients", "ClusterContext", "cluster_api_errors"]

DEFAULT_KUBECONFIG = "~/.kube/config"


class ClusterClients(NamedTuple):
    """The namespace scoped API handles of a cluster context."""

    namespace: str
    deployments: AppsV1Api
    pods: CoreV1Api
    services: CoreV1Api


@contextlib.contextmanager
def cluster_api_errors(operation: str) -> Iterator[None]:
    """Translate Kubernetes client failures raised within the block into `ClusterAPIError`."""
    try:
        yield
    except ApiException as error:
        raise ClusterAPIError(
            f"failed to {operation}: ({error.status}) {error.reason}",
            reason=error.reason,
            status=error.status,
        ) from error
    except aiohttp.ClientError as error:
        raise ClusterAPIError(
            f"failed to {operation}: {error}", reason="transport"
        ) from error


class ClusterContext(Mixin):
    """Lazily initialized Kubernetes API handles bound to a single namespace.

    Args:
        namespace: The namespace that all handles operate in.
        kubeconfig: Explicit path to a kubeconfig file. When `None`, `$KUBECONFIG`
            and then `~/.kube/config` are consulted.
        context: Name of the kubeconfig context to use.
    """

    def __init__(
        self,
        namespace: str = "default",
        *,
        kubeconfig: Optional[Union[str, pathlib.Path]] = None,
        context: Optional[str] = None,
    ) -> None:  # noqa: D107
        self.namespace = namespace
        self.kubeconfig = kubeconfig
        self.kube_context = context
        self._lock = asyncio.Lock()
        self._api_client: Optional[kubernetes_asyncio.client.ApiClient] = None
        self._clients: Optional[ClusterClients] = None

    @classmethod
    def from_settings(cls, settings: TunnelSettings) -> ClusterContext:
        return cls(
            settings.namespace,
            kubeconfig=settings.kubeconfig,
            context=settings.context,
        )

    def __repr__(self) -> str:
        return f"ClusterContext(namespace={self.namespace!r}, initialized={self.initialized})"

    @property
    def initialized(self) -> bool:
        return self._clients is not None

    def kubeconfig_paths(self) -> list[pathlib.Path]:
        """Return the candidate kubeconfig files in resolution order."""
        if self.kubeconfig:
            return [pathlib.Path(self.kubeconfig).expanduser()]

        if env_value := os.environ.get("KUBECONFIG"):
            # KUBECONFIG may hold several files separated by the OS path separator
            return [
                pathlib.Path(p).expanduser()
                for p in env_value.split(os.pathsep)
                if p
            ]

        return [pathlib.Path(DEFAULT_KUBECONFIG).expanduser()]

    async def clients(self) -> ClusterClients:
        """Return the API handles, building them on first use."""
        if self._clients is not None:
            return self._clients

        async with self._lock:
            if self._clients is None:
                self._clients = await self._build_clients()

        return self._clients

    async def close(self) -> None:
        """Release the underlying HTTP session. The context can be initialized again afterwards."""
        async with self._lock:
            api_client, self._api_client, self._clients = self._api_client, None, None
            if api_client is not None:
                await api_client.close()

    async def __aenter__(self) -> ClusterContext:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _build_clients(self) -> ClusterClients:
        configuration = await self._load_configuration()
        try:
            api_client = kubernetes_asyncio.client.ApiClient(configuration)
        except Exception as error:  # pylint: disable=broad-except
            raise ConfigurationError(
                f"unable to construct Kubernetes API client: {error}",
                reason="client-construction-failed",
            ) from error

        self._api_client = api_client
        apps_v1, core_v1 = AppsV1Api(api_client), CoreV1Api(api_client)
        self.logger.debug(
            f'initialized Kubernetes API handles for namespace "{self.namespace}"'
        )
        return ClusterClients(
            namespace=self.namespace,
            deployments=apps_v1,
            pods=core_v1,
            services=core_v1,
        )

    async def _load_configuration(self) -> kubernetes_asyncio.client.Configuration:
        configuration = kubernetes_asyncio.client.Configuration()
        config_files = [p for p in self.kubeconfig_paths() if p.exists()]

        if config_files:
            config_file = os.pathsep.join(map(str, config_files))
            self.logger.debug(f"loading kubeconfig from {config_file}")
            try:
                await kubernetes_asyncio.config.load_kube_config(
                    config_file=config_file,
                    context=self.kube_context,
                    client_configuration=configuration,
                )
            except Exception as error:  # pylint: disable=broad-except
                raise ConfigurationError(
                    f"unable to load kubeconfig {config_file}: {error}",
                    reason="kubeconfig-invalid",
                ) from error

        elif os.getenv("KUBERNETES_SERVICE_HOST"):
            self.logger.debug("no kubeconfig found, using in-cluster configuration")
            try:
                kubernetes_asyncio.config.load_incluster_config(
                    client_configuration=configuration
                )
            except kubernetes_asyncio.config.ConfigException as error:
                raise ConfigurationError(
                    f"unable to load in-cluster configuration: {error}",
                    reason="kubeconfig-invalid",
                ) from error

        else:
            searched = ", ".join(map(str, self.kubeconfig_paths()))
            raise ConfigurationError(
                f"unable to configure Kubernetes client: no kubeconfig file found (searched {searched}) nor in-cluster environment variables",
                reason="kubeconfig-not-found",
            )

        return configuration
