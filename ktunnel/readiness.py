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

"""Wait for freshly provisioned sidecar pods to be running.

Readiness is decided client side from a full, unfiltered pod listing of the
namespace that is repeated on a fixed interval. A pod counts toward readiness
when its name starts with the sidecar name, it was created strictly after a
threshold captured before the workload was submitted, and it is in the
`Running` phase. The count is recomputed from scratch on every poll.
"""
from __future__ import annotations

import asyncio
import datetime
from typing import Iterable, Optional, Union

import devtools
import pydantic
from kubernetes_asyncio.client import V1Pod

from ktunnel.configuration import DEFAULT_POLL_INTERVAL
from ktunnel.context import ClusterContext
from ktunnel.errors import ReadinessTimeoutError
from ktunnel.kubernetes_helpers import PodHelper
from ktunnel.logging import Mixin
from ktunnel.types import Duration, Numeric

__all__ = [
    "ReadinessCriteria",
    "ReadinessPoller",
    "count_ready",
    "readiness_threshold",
    "wait_for_ready",
]

DurationDescriptor = Union[Duration, str, Numeric, datetime.timedelta]


def readiness_threshold(now: Optional[datetime.datetime] = None) -> datetime.datetime:
    """Return the creation time threshold for pods of a workload about to be submitted.

    Pod creation timestamps have a resolution of one second, so the current time is
    truncated to the second and moved back by one second. Pods created within the
    same second as the submission still count as fresh.

    This widens the window by up to one second: a pod of a previous revision that
    was created earlier in the same wall-clock second as the submission is
    indistinguishable from a fresh one and counts toward readiness. Pods from any
    earlier second are excluded.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    return now.replace(microsecond=0) - datetime.timedelta(seconds=1)


class ReadinessCriteria(pydantic.BaseModel):
    """Describes the pods that must be running before a sidecar is considered ready."""

    name_prefix: str
    """Pod names must start with this prefix (the workload name)."""

    created_after: datetime.datetime
    """Exclusive lower bound on the pod creation timestamp."""

    target_count: int = pydantic.Field(1, ge=0)
    """Number of matching running pods required."""

    model_config = pydantic.ConfigDict(frozen=True)

    @pydantic.field_validator("created_after")
    @classmethod
    def _assume_utc(cls, value: datetime.datetime) -> datetime.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value

    def is_satisfied_by(self, pod: V1Pod) -> bool:
        name = pod.metadata.name if pod.metadata else None
        return (
            bool(name)
            and name.startswith(self.name_prefix)
            and PodHelper.created_after(pod, self.created_after)
            and PodHelper.is_running(pod)
        )


def count_ready(pods: Iterable[V1Pod], criteria: ReadinessCriteria) -> int:
    """Return the number of pods in the snapshot that satisfy the criteria."""
    return sum(1 for pod in pods if criteria.is_satisfied_by(pod))


class ReadinessPoller(Mixin):
    """Polls the pods of a namespace until the readiness criteria are met.

    Args:
        context: The cluster context used to list pods.
        criteria: The readiness criteria to evaluate on every poll.
        interval: Fixed delay between two pod listings.
        timeout: Maximum time to wait. Wait forever when `None`.

    Raises:
        ValueError: Raised if the interval or the timeout is not positive.
    """

    def __init__(
        self,
        context: ClusterContext,
        criteria: ReadinessCriteria,
        *,
        interval: DurationDescriptor = DEFAULT_POLL_INTERVAL,
        timeout: Optional[DurationDescriptor] = None,
    ) -> None:  # noqa: D107
        self.context = context
        self.criteria = criteria
        self.interval = Duration(interval)
        self.timeout = Duration(timeout) if timeout is not None else None
        if self.interval.total_seconds() <= 0:
            raise ValueError(f"poll interval must be greater than zero, got {self.interval}")
        if self.timeout is not None and self.timeout.total_seconds() <= 0:
            raise ValueError(f"timeout must be greater than zero, got {self.timeout}")
        self.polls = 0

    async def poll(self) -> int:
        """List the pods once and return how many satisfy the criteria.

        Raises:
            ClusterAPIError: Raised if the pods cannot be listed.
        """
        pods = await PodHelper.list_pods(self.context)
        self.polls += 1
        count = count_ready(pods, self.criteria)
        self.logger.opt(lazy=True).trace(
            "{}", lambda: devtools.pformat([p.metadata.name for p in pods if p.metadata])
        )
        self.logger.debug(
            f'{count}/{self.criteria.target_count} pod(s) of "{self.criteria.name_prefix}" running (poll #{self.polls})'
        )
        return count

    async def run(self) -> bool:
        """Poll until the criteria are satisfied and return True.

        Raises:
            ClusterAPIError: Raised if a pod listing fails.
            ReadinessTimeoutError: Raised if the timeout expires first.
        """
        if self.timeout is None:
            return await self._poll_until_ready()

        try:
            return await asyncio.wait_for(
                self._poll_until_ready(), self.timeout.total_seconds()
            )
        except asyncio.TimeoutError as error:
            raise ReadinessTimeoutError(
                f'timed out after {self.timeout} waiting for {self.criteria.target_count} pod(s) of "{self.criteria.name_prefix}" to be running',
                reason="readiness-timeout",
            ) from error

    def start(self) -> asyncio.Task[bool]:
        """Start polling in a background task and return it immediately.

        The task completes exactly once: with `True` when the criteria are met, or
        with the error that stopped the polling. Cancel the task to stop waiting.
        """
        return asyncio.create_task(
            self.run(),
            name=f"readiness:{self.context.namespace}/{self.criteria.name_prefix} (polling every {self.interval})",
        )

    async def _poll_until_ready(self) -> bool:
        while True:
            if await self.poll() >= self.criteria.target_count:
                self.logger.info(
                    f'{self.criteria.target_count} pod(s) of "{self.criteria.name_prefix}" are running'
                )
                return True

            await asyncio.sleep(self.interval.total_seconds())


def wait_for_ready(
    context: ClusterContext,
    name: str,
    since: datetime.datetime,
    target_count: int = 1,
    *,
    interval: DurationDescriptor = DEFAULT_POLL_INTERVAL,
    timeout: Optional[DurationDescriptor] = None,
) -> asyncio.Task[bool]:
    """Start waiting for `target_count` pods of `name` created after `since` to be running.

    Returns immediately with the background task; await it to block until ready.
    Must be called from a running event loop.
    """
    criteria = ReadinessCriteria(
        name_prefix=name, created_after=since, target_count=target_count
    )
    return ReadinessPoller(
        context, criteria, interval=interval, timeout=timeout
    ).start()
