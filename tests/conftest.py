import builtins
import datetime
import os
from typing import Callable, Generator, Optional

import loguru
import pytest
import typer.testing
from kubernetes_asyncio.client import V1ObjectMeta, V1Pod, V1PodList, V1PodStatus

import ktunnel
import ktunnel.logging
from ktunnel.configuration import set_verbose
from ktunnel.context import ClusterClients, ClusterContext

# Add the devtools debug() function globally in tests
from devtools import debug

builtins.debug = debug


class FakeApiClient:
    """Stands in for the shared `ApiClient` of a cluster context."""

    def __init__(self) -> None:
        self.default_headers = {"User-Agent": "ktunnel/test"}

    def set_default_header(self, header_name: str, header_value: str) -> None:
        self.default_headers[header_name] = header_value

    async def close(self) -> None:
        pass


@pytest.fixture(autouse=True)
def clean_environment() -> Callable[[], None]:
    """Discard environment variables prefixed with `KTUNNEL_`.

    Returns:
        A callable that can be used to clean the environment on-demand.
    """

    def _clean_environment():
        for key in list(os.environ.keys()):
            if key.startswith("KTUNNEL_"):
                os.environ.pop(key)

    _clean_environment()
    return _clean_environment


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    yield
    set_verbose(False)
    ktunnel.logging.reset_to_defaults()


@pytest.fixture
def captured_logs() -> Generator[list["loguru.Message"], None, None]:
    messages = []
    temp_sink_id = ktunnel.logger.add(lambda m: messages.append(m), level=0)
    yield messages
    ktunnel.logger.remove(temp_sink_id)


@pytest.fixture()
def cli_runner() -> typer.testing.CliRunner:
    return typer.testing.CliRunner()


@pytest.fixture
def api_client() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def cluster_clients(mocker, api_client: FakeApiClient) -> ClusterClients:
    """API handles for namespace `ns1` whose calls are `AsyncMock` objects.

    Create calls echo the submitted body and the pod listing is empty until configured.
    """
    deployments = mocker.Mock(name="AppsV1Api", api_client=api_client)
    deployments.create_namespaced_deployment = mocker.AsyncMock(
        side_effect=lambda namespace, body: body
    )
    deployments.read_namespaced_deployment = mocker.AsyncMock()
    deployments.patch_namespaced_deployment = mocker.AsyncMock(
        side_effect=lambda name, namespace, body, **kwargs: body
    )

    core = mocker.Mock(name="CoreV1Api", api_client=api_client)
    core.create_namespaced_service = mocker.AsyncMock(
        side_effect=lambda namespace, body: body
    )
    core.list_namespaced_pod = mocker.AsyncMock(return_value=V1PodList(items=[]))

    return ClusterClients(
        namespace="ns1", deployments=deployments, pods=core, services=core
    )


@pytest.fixture
def cluster(cluster_clients: ClusterClients) -> ClusterContext:
    """A cluster context for namespace `ns1` that is already initialized with fake handles."""
    context = ClusterContext(cluster_clients.namespace)
    context._clients = cluster_clients
    return context


def _build_pod(
    name: str,
    phase: Optional[str] = "Running",
    created_at: Optional[datetime.datetime] = None,
) -> V1Pod:
    return V1Pod(
        metadata=V1ObjectMeta(
            name=name,
            creation_timestamp=created_at
            or datetime.datetime.now(datetime.timezone.utc),
        ),
        status=V1PodStatus(phase=phase) if phase else None,
    )


@pytest.fixture
def build_pod() -> Callable[..., V1Pod]:
    """Return a factory of pods with a name, a phase and a creation timestamp (defaults to now)."""
    return _build_pod


@pytest.fixture
def pod_list() -> Callable[..., V1PodList]:
    """Return a factory wrapping pods into a list response."""
    return lambda *pods: V1PodList(items=list(pods))
