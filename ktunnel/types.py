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

from __future__ import annotations

import datetime
from typing import Any, Union

import pydantic
import pydantic_core
from pydantic_core import core_schema

from ktunnel.utilities.duration_str import (
    timedelta_from_duration_str,
    timedelta_to_duration_str,
)

__all__ = ["Duration", "Numeric"]

Numeric = Union[float, int]


class Duration(datetime.timedelta):
    """
    Duration is a subclass of datetime.timedelta that is serialized as a Golang duration string.

    Duration objects can be initialized with a duration string, a numeric seconds value,
    a timedelta object, and with the time component keywords of timedelta.

    Refer to `ktunnel.utilities.duration_str` for details about duration strings.
    """

    def __new__(
        cls,
        duration: Union[str, Numeric, datetime.timedelta] = 0,
        **kwargs,
    ) -> Duration:
        seconds = kwargs.pop("seconds", 0)
        microseconds = kwargs.pop("microseconds", 0)

        if isinstance(duration, str):
            microseconds = microseconds + (
                timedelta_from_duration_str(duration) / datetime.timedelta(microseconds=1)
            )
        elif isinstance(duration, datetime.timedelta):
            microseconds = microseconds + (duration / datetime.timedelta(microseconds=1))
        elif isinstance(duration, (int, float)):
            # NOTE: numeric first arg is seconds, unlike timedelta which treats it as days
            seconds = seconds + duration
        else:
            raise TypeError(
                f"cannot create Duration from value of type {duration.__class__.__name__}"
            )

        return datetime.timedelta.__new__(
            cls, seconds=seconds, microseconds=microseconds, **kwargs
        )

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: pydantic.GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls.validate,
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def __get_pydantic_json_schema__(
        cls, schema: core_schema.CoreSchema, handler: pydantic.GetJsonSchemaHandler
    ) -> dict[str, Any]:
        return {
            "type": "string",
            "format": "duration",
            "examples": ["300ms", "5m", "2h45m"],
        }

    @classmethod
    def validate(cls, value: Any) -> Duration:
        if isinstance(value, bool):
            raise pydantic_core.PydanticCustomError(
                "duration_type", "invalid duration value {value}", {"value": value}
            )
        if isinstance(value, (str, datetime.timedelta, int, float)):
            try:
                return cls(value)
            except ValueError as error:
                raise pydantic_core.PydanticCustomError(
                    "duration_parsing", str(error)
                ) from error

        raise pydantic_core.PydanticCustomError(
            "duration_type", "invalid duration value {value}", {"value": repr(value)}
        )

    def __str__(self) -> str:
        return timedelta_to_duration_str(self)

    def __repr__(self) -> str:
        return f"Duration('{self}')"

    def __eq__(self, other) -> bool:
        if isinstance(other, str):
            try:
                return self == Duration(other)
            except ValueError:
                return False
        if isinstance(other, (int, float)) and not isinstance(other, bool):
            return self.total_seconds() == other
        return super().__eq__(other)

    def __hash__(self) -> int:
        return super().__hash__()
