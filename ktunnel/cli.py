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

import asyncio
import enum
import pathlib
from typing import Any, Coroutine, List, Optional

import pydantic
import typer

import ktunnel
import ktunnel.logging
from ktunnel.configuration import TunnelSettings, set_verbose
from ktunnel.context import ClusterContext
from ktunnel.errors import BaseError
from ktunnel.kubernetes_helpers import ServiceHelper
from ktunnel.readiness import ReadinessPoller
from ktunnel.sidecar import expose, inject_sidecar
from ktunnel.types import Duration

app = typer.Typer(
    name="ktunnel",
    add_completion=False,
    help="Provision tunnel sidecars in Kubernetes and wait for them to be ready",
)


class LogLevel(str, enum.Enum):
    trace = "TRACE"
    debug = "DEBUG"
    info = "INFO"
    success = "SUCCESS"
    warning = "WARNING"
    error = "ERROR"
    critical = "CRITICAL"


def _duration(
    value: Optional[str], default: Optional[Duration], param_hint: str
) -> Optional[Duration]:
    if value is None:
        return default
    try:
        duration = Duration(value)
    except ValueError as error:
        raise typer.BadParameter(str(error), param_hint=param_hint) from error
    if duration.total_seconds() <= 0:
        raise typer.BadParameter("must be greater than zero", param_hint=param_hint)
    return duration


def _settings(context: typer.Context) -> TunnelSettings:
    return context.obj


def run_async(coroutine: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine to completion, exiting with status 1 on ktunnel errors."""
    try:
        return asyncio.run(coroutine)
    except BaseError as error:
        ktunnel.logger.error(f"{error.__class__.__name__}: {error}")
        raise typer.Exit(1) from error


@app.callback()
def root(
    context: typer.Context,
    namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Namespace to provision the sidecar in"
    ),
    kubeconfig: Optional[pathlib.Path] = typer.Option(
        None, "--kubeconfig", help="Path to the kubeconfig file"
    ),
    kube_context: Optional[str] = typer.Option(
        None, "--context", help="Name of the kubeconfig context to use"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Emit debug logs and launch the sidecar with diagnostic output",
    ),
    log_level: Optional[LogLevel] = typer.Option(
        None, "--log-level", "-l", case_sensitive=False, help="Set the log level"
    ),
    no_color: Optional[bool] = typer.Option(
        None, "--no-color", help="Disable colored output"
    ),
) -> None:
    overrides = {
        key: value
        for key, value in dict(
            namespace=namespace,
            kubeconfig=kubeconfig,
            context=kube_context,
            log_level=log_level.value if log_level else None,
        ).items()
        if value is not None
    }
    if verbose:
        overrides["verbose"] = True

    try:
        settings = TunnelSettings(**overrides)
    except pydantic.ValidationError as error:
        typer.echo(f"invalid configuration: {error}", err=True)
        raise typer.Exit(2) from error

    if settings.verbose and not log_level:
        settings.log_level = LogLevel.debug.value

    ktunnel.logging.set_level(settings.log_level)
    if no_color:
        ktunnel.logging.set_colors(False)
    set_verbose(settings.verbose)

    context.obj = settings


@app.command("expose")
def expose_command(
    context: typer.Context,
    name: str = typer.Argument(..., help="Name of the sidecar Deployment and Service"),
    port_mappings: Optional[List[str]] = typer.Argument(
        None,
        metavar="[PORT[:TARGET_PORT][/PROTOCOL]]...",
        help="Ports exposed by the Service (defaults to the sidecar port)",
    ),
    image: Optional[str] = typer.Option(None, "--image", "-i", help="Sidecar image"),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Port the sidecar server listens on"
    ),
    replicas: Optional[int] = typer.Option(
        None, "--replicas", "-r", min=1, help="Number of sidecar replicas"
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", "-t", help="Maximum time to wait for readiness (e.g. 2m)"
    ),
    interval: Optional[str] = typer.Option(
        None, "--interval", help="Delay between readiness polls (e.g. 300ms)"
    ),
) -> None:
    """
    Create a sidecar Deployment and Service and wait for the sidecar to be running
    """
    settings = _settings(context)
    poll_interval = _duration(interval, settings.poll_interval, "--interval")
    deadline = _duration(timeout, settings.timeout, "--timeout")
    try:
        ports = [ServiceHelper.parse_port(m) for m in port_mappings] if port_mappings else None
    except ValueError as error:
        raise typer.BadParameter(str(error), param_hint="PORT_MAPPINGS") from error

    async def _expose() -> None:
        async with ClusterContext.from_settings(settings) as cluster:
            await expose(
                cluster,
                name,
                port or settings.port,
                image or settings.image,
                replicas or settings.replicas,
                ports=ports,
                interval=poll_interval,
                timeout=deadline,
            )

    run_async(_expose())
    typer.echo(f'sidecar "{name}" is running in namespace "{settings.namespace}"')


@app.command("inject")
def inject_command(
    context: typer.Context,
    deployment: str = typer.Argument(..., help="Name of the Deployment to inject into"),
    image: Optional[str] = typer.Option(None, "--image", "-i", help="Sidecar image"),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", help="Port the sidecar server listens on"
    ),
    timeout: Optional[str] = typer.Option(
        None, "--timeout", "-t", help="Maximum time to wait for readiness (e.g. 2m)"
    ),
    interval: Optional[str] = typer.Option(
        None, "--interval", help="Delay between readiness polls (e.g. 300ms)"
    ),
) -> None:
    """
    Inject the sidecar into an existing Deployment and wait for the rollout
    """
    settings = _settings(context)
    poll_interval = _duration(interval, settings.poll_interval, "--interval")
    deadline = _duration(timeout, settings.timeout, "--timeout")

    async def _inject() -> bool:
        async with ClusterContext.from_settings(settings) as cluster:
            criteria = await inject_sidecar(
                cluster, deployment, port or settings.port, image or settings.image
            )
            if criteria is None:
                return False

            await ReadinessPoller(
                cluster,
                criteria,
                interval=poll_interval,
                timeout=deadline,
            ).start()
            return True

    try:
        injected = run_async(_inject())
    except ValueError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(1) from error

    if injected:
        typer.echo(f'sidecar injected into deployment "{deployment}" and running')
    else:
        typer.echo(f'deployment "{deployment}" already runs the sidecar')


def main() -> None:
    app()


if __name__ == "__main__":
    main()
