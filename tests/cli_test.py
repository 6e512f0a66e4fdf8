import datetime

import pytest
from typer.testing import CliRunner

import ktunnel.logging
from ktunnel.cli import app
from ktunnel.configuration import is_verbose
from ktunnel.errors import ClusterAPIError, ConfigurationError, ReadinessTimeoutError
from ktunnel.readiness import ReadinessCriteria
from ktunnel.types import Duration


@pytest.fixture
def expose(mocker):
    return mocker.patch("ktunnel.cli.expose", new_callable=mocker.AsyncMock)


@pytest.fixture
def inject_sidecar(mocker):
    return mocker.patch("ktunnel.cli.inject_sidecar", new_callable=mocker.AsyncMock)


@pytest.fixture
def readiness_poller(mocker):
    poller_class = mocker.patch("ktunnel.cli.ReadinessPoller")
    poller_class.return_value.start = mocker.AsyncMock(return_value=True)
    return poller_class


def test_help(cli_runner: CliRunner) -> None:
    result = cli_runner.invoke(app, "--help")
    assert result.exit_code == 0
    assert "expose" in result.output
    assert "inject" in result.output


def test_expose(cli_runner: CliRunner, expose) -> None:
    result = cli_runner.invoke(app, ["-n", "ns1", "expose", "tun-abc"])
    assert result.exit_code == 0, result.output
    assert 'sidecar "tun-abc" is running in namespace "ns1"' in result.output

    expose.assert_awaited_once()
    cluster, name, port, image, replicas = expose.call_args.args
    assert cluster.namespace == "ns1"
    assert (name, port, image, replicas) == (
        "tun-abc",
        28688,
        "quay.io/omrikiei/ktunnel:latest",
        1,
    )
    kwargs = expose.call_args.kwargs
    assert kwargs["ports"] is None
    assert kwargs["interval"] == Duration("300ms")
    assert kwargs["timeout"] is None


def test_expose_with_options(cli_runner: CliRunner, expose) -> None:
    result = cli_runner.invoke(
        app,
        [
            "expose",
            "tun-abc",
            "8080:80",
            "53/udp",
            "--image",
            "example/tunnel:latest",
            "--port",
            "9000",
            "--replicas",
            "2",
            "--timeout",
            "2m",
            "--interval",
            "1s",
        ],
    )
    assert result.exit_code == 0, result.output

    _, name, port, image, replicas = expose.call_args.args
    assert (name, port, image, replicas) == ("tun-abc", 9000, "example/tunnel:latest", 2)
    kwargs = expose.call_args.kwargs
    assert [(p.name, p.port, p.target_port) for p in kwargs["ports"]] == [
        ("tcp-8080", 8080, 80),
        ("udp-53", 53, 53),
    ]
    assert kwargs["interval"] == Duration(1)
    assert kwargs["timeout"] == Duration("2m")


def test_expose_reads_environment(cli_runner: CliRunner, expose, monkeypatch) -> None:
    monkeypatch.setenv("KTUNNEL_NAMESPACE", "from-env")
    monkeypatch.setenv("KTUNNEL_TIMEOUT", "30s")

    result = cli_runner.invoke(app, ["expose", "tun-abc"])
    assert result.exit_code == 0, result.output
    assert expose.call_args.args[0].namespace == "from-env"
    assert expose.call_args.kwargs["timeout"] == Duration(30)


@pytest.mark.parametrize(
    "error",
    [
        ConfigurationError("no kubeconfig file found", reason="kubeconfig-not-found"),
        ClusterAPIError("failed to create deployment: (409) AlreadyExists", status=409),
        ReadinessTimeoutError("timed out after 2m", reason="readiness-timeout"),
    ],
)
def test_expose_errors_exit_with_status_1(cli_runner: CliRunner, expose, error) -> None:
    expose.side_effect = error
    result = cli_runner.invoke(app, ["expose", "tun-abc"])
    assert result.exit_code == 1
    assert "is running" not in result.output


@pytest.mark.parametrize(
    "args",
    [
        ["expose", "tun-abc", "http"],
        ["expose", "tun-abc", "--timeout", "soon"],
        ["expose", "tun-abc", "--timeout", "0s"],
        ["expose", "tun-abc", "--interval", "0s"],
        ["expose", "tun-abc", "--interval", "-1s"],
        ["expose", "tun-abc", "--replicas", "0"],
        ["--namespace", "", "expose", "tun-abc"],
        ["--log-level", "chatty", "expose", "tun-abc"],
    ],
)
def test_invalid_arguments(cli_runner: CliRunner, expose, args) -> None:
    result = cli_runner.invoke(app, args)
    assert result.exit_code == 2
    expose.assert_not_called()


def test_verbose(cli_runner: CliRunner, expose) -> None:
    result = cli_runner.invoke(app, ["--verbose", "expose", "tun-abc"])
    assert result.exit_code == 0, result.output
    assert is_verbose()
    assert ktunnel.logging.DEFAULT_FILTER.level == "DEBUG"


def test_log_level(cli_runner: CliRunner, expose) -> None:
    result = cli_runner.invoke(app, ["-v", "-l", "warning", "expose", "tun-abc"])
    assert result.exit_code == 0, result.output
    assert ktunnel.logging.DEFAULT_FILTER.level == "WARNING"


class TestInject:
    def test_inject(self, cli_runner: CliRunner, inject_sidecar, readiness_poller) -> None:
        criteria = ReadinessCriteria(
            name_prefix="web",
            created_after=datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc),
            target_count=3,
        )
        inject_sidecar.return_value = criteria

        result = cli_runner.invoke(app, ["-n", "ns1", "inject", "web", "--timeout", "1m"])
        assert result.exit_code == 0, result.output
        assert 'sidecar injected into deployment "web" and running' in result.output

        cluster, name, port, image = inject_sidecar.call_args.args
        assert (cluster.namespace, name, port, image) == (
            "ns1",
            "web",
            28688,
            "quay.io/omrikiei/ktunnel:latest",
        )
        assert readiness_poller.call_args.args[1] == criteria
        assert readiness_poller.call_args.kwargs["timeout"] == Duration("1m")
        readiness_poller.return_value.start.assert_awaited_once()

    def test_already_present(self, cli_runner: CliRunner, inject_sidecar, readiness_poller) -> None:
        inject_sidecar.return_value = None

        result = cli_runner.invoke(app, ["inject", "web"])
        assert result.exit_code == 0, result.output
        assert 'deployment "web" already runs the sidecar' in result.output
        readiness_poller.assert_not_called()

    def test_name_conflict(self, cli_runner: CliRunner, inject_sidecar, readiness_poller) -> None:
        inject_sidecar.side_effect = ValueError(
            'deployment "web" already has a container named "ktunnel" running example/tunnel:0.9'
        )

        result = cli_runner.invoke(app, ["inject", "web"])
        assert result.exit_code == 1
        assert 'already has a container named "ktunnel"' in result.output

    def test_cluster_error(self, cli_runner: CliRunner, inject_sidecar, readiness_poller) -> None:
        inject_sidecar.side_effect = ClusterAPIError(
            'failed to read deployment "web": (404) Not Found', status=404
        )

        result = cli_runner.invoke(app, ["inject", "web"])
        assert result.exit_code == 1

    @pytest.mark.parametrize(
        "args",
        [
            ["inject", "web", "--interval", "-1s"],
            ["inject", "web", "--interval", "0s"],
            ["inject", "web", "--timeout", "0s"],
        ],
    )
    def test_non_positive_durations(
        self, cli_runner: CliRunner, inject_sidecar, readiness_poller, args
    ) -> None:
        result = cli_runner.invoke(app, args)
        assert result.exit_code == 2
        inject_sidecar.assert_not_called()
