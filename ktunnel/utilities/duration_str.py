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

# Go style duration strings ("300ms", "1m30s") as used by kubectl and the sidecar flags.
# Adapted from durationpy
# https://github.com/icholy/durationpy/

from datetime import timedelta
import re

__all__ = ["timedelta_from_duration_str", "timedelta_to_duration_str"]

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

units = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "µs": _MICROSECOND,
    "μs": _MICROSECOND,
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}

_COMPONENT_PATTERN = re.compile(r"([\d\.]+)([a-zµμ]+)")


def timedelta_from_duration_str(duration: str) -> timedelta:
    """
    Parse a Go duration string into a timedelta.

    A duration string is a possibly signed sequence of decimal numbers, each with
    an optional fraction and a unit suffix, such as "300ms", "-1.5h" or "2h45m".
    Valid units are "ns", "us" (or "µs"), "ms", "s", "m" and "h".

    Raises:
        ValueError: Raised if the string cannot be parsed.
    """
    duration = duration.strip()
    if duration in ("0", "+0", "-0"):
        return timedelta(0)

    body = duration.lstrip("+-")
    matches = _COMPONENT_PATTERN.findall(body)
    if not matches or "".join(v + u for v, u in matches) != body:
        raise ValueError(f"Invalid duration '{duration}'")

    nanoseconds = 0.0
    for value, unit in matches:
        if unit not in units:
            raise ValueError(f"Unknown unit '{unit}' in duration '{duration}'")
        try:
            nanoseconds += float(value) * units[unit]
        except ValueError:
            raise ValueError(f"Invalid value '{value}' in duration '{duration}'")

    sign = -1 if duration.startswith("-") else 1
    return timedelta(microseconds=sign * nanoseconds / _MICROSECOND)


def timedelta_to_duration_str(delta: timedelta) -> str:
    """Return the Go duration string representation of a timedelta (e.g. "1m30s", "300ms")."""
    total_seconds = delta.total_seconds()
    if not total_seconds:
        return "0s"

    sign = "-" if total_seconds < 0 else ""
    remaining = round(abs(total_seconds) * _SECOND)
    result = ""

    if remaining < _SECOND:
        for unit, size in (("ms", _MILLISECOND), ("us", _MICROSECOND), ("ns", _NANOSECOND)):
            count, remaining = divmod(remaining, size)
            if count:
                result += f"{count}{unit}"
        return f"{sign}{result}"

    for unit, size in (("h", _HOUR), ("m", _MINUTE)):
        count, remaining = divmod(remaining, size)
        if count:
            result += f"{count}{unit}"

    if remaining:
        result += "{:g}s".format(remaining / _SECOND)

    return f"{sign}{result}"
