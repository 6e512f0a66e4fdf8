from datetime import timedelta

import pydantic
import pytest

from ktunnel.configuration import DEFAULT_IMAGE, DEFAULT_PORT, TunnelSettings
from ktunnel.types import Duration
from ktunnel.utilities.duration_str import (
    timedelta_from_duration_str,
    timedelta_to_duration_str,
)


class TestDuration:
    def test_init_with_seconds(self) -> None:
        duration = Duration(120)
        assert duration.total_seconds() == 120

    def test_init_with_fractional_seconds(self) -> None:
        duration = Duration(0.3)
        assert duration == timedelta(milliseconds=300)

    def test_init_with_timedelta(self) -> None:
        td = timedelta(seconds=120)
        duration = Duration(td)
        assert duration.total_seconds() == 120

    def test_init_with_duration_str(self) -> None:
        duration = Duration("5m")
        assert duration.total_seconds() == 300

    def test_init_with_invalid_str(self) -> None:
        with pytest.raises(ValueError) as error:
            Duration("invalid")
        assert str(error.value) == "Invalid duration 'invalid'"

    def test_init_with_invalid_type(self) -> None:
        with pytest.raises(TypeError, match="cannot create Duration from value of type list"):
            Duration([1])

    def test_init_with_time_components(self) -> None:
        duration = Duration(hours=10, seconds=25)
        assert duration.total_seconds() == 36025.0

    def test_eq_str(self) -> None:
        duration = Duration(300)
        assert duration == "5m"
        assert duration != "garbage"

    def test_eq_timedelta(self) -> None:
        duration = Duration(18_000)
        assert duration == timedelta(hours=5)

    def test_eq_numeric(self) -> None:
        duration = Duration("5h")
        assert duration == 18_000

    def test_repr(self) -> None:
        duration = Duration("300ms")
        assert duration.__repr__() == "Duration('300ms')"

    def test_str(self) -> None:
        duration = Duration("5h37m15s")
        assert duration.__str__() == "5h37m15s"

    def test_hashable(self) -> None:
        assert {Duration("1m"): "a"}[Duration(60)] == "a"

    def test_pydantic_validation(self) -> None:
        model = pydantic.create_model("duration_model", duration=(Duration, ...))
        assert model(duration="2m").duration == Duration(120)
        assert model(duration=1.5).duration == Duration("1.5s")
        assert model(duration=timedelta(minutes=1)).duration == "1m"

    @pytest.mark.parametrize("value", ["5 minutes", True, [], None])
    def test_pydantic_validation_errors(self, value) -> None:
        model = pydantic.create_model("duration_model", duration=(Duration, ...))
        with pytest.raises(pydantic.ValidationError):
            model(duration=value)

    def test_pydantic_serialization(self) -> None:
        model = pydantic.create_model("duration_model", duration=(Duration, ...))
        assert model(duration=90).model_dump(mode="json") == {"duration": "1m30s"}

    def test_pydantic_schema(self) -> None:
        model = pydantic.create_model("duration_model", duration=(Duration, ...))
        schema = model.model_json_schema()
        assert schema["properties"]["duration"]["type"] == "string"
        assert schema["properties"]["duration"]["format"] == "duration"


class TestDurationStr:
    @pytest.mark.parametrize(
        "duration_str, expected",
        [
            ("0", timedelta(0)),
            ("300ms", timedelta(milliseconds=300)),
            ("1.5s", timedelta(seconds=1.5)),
            ("1m30s", timedelta(seconds=90)),
            ("2h45m", timedelta(hours=2, minutes=45)),
            ("-5m", -timedelta(minutes=5)),
            ("1500us", timedelta(microseconds=1500)),
            ("1500µs", timedelta(microseconds=1500)),
        ],
    )
    def test_parse(self, duration_str: str, expected: timedelta) -> None:
        assert timedelta_from_duration_str(duration_str) == expected

    @pytest.mark.parametrize(
        "duration_str, message",
        [
            ("", "Invalid duration ''"),
            ("5 m", "Invalid duration '5 m'"),
            ("5", "Invalid duration '5'"),
            ("5x", "Unknown unit 'x' in duration '5x'"),
            ("1..5s", "Invalid value '1..5' in duration '1..5s'"),
        ],
    )
    def test_parse_invalid(self, duration_str: str, message: str) -> None:
        with pytest.raises(ValueError) as error:
            timedelta_from_duration_str(duration_str)
        assert str(error.value) == message

    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(0), "0s"),
            (timedelta(milliseconds=300), "300ms"),
            (timedelta(microseconds=1500), "1ms500us"),
            (timedelta(seconds=1.5), "1.5s"),
            (timedelta(seconds=90), "1m30s"),
            (timedelta(hours=1), "1h"),
            (timedelta(hours=2, minutes=45, seconds=3), "2h45m3s"),
            (-timedelta(minutes=5), "-5m"),
        ],
    )
    def test_format(self, delta: timedelta, expected: str) -> None:
        assert timedelta_to_duration_str(delta) == expected


class TestTunnelSettings:
    def test_defaults(self) -> None:
        settings = TunnelSettings()
        assert settings.namespace == "default"
        assert settings.kubeconfig is None
        assert settings.context is None
        assert settings.image == DEFAULT_IMAGE
        assert settings.port == DEFAULT_PORT == 28688
        assert settings.replicas == 1
        assert settings.verbose is False
        assert settings.poll_interval == Duration("300ms")
        assert settings.timeout is None
        assert settings.log_level == "INFO"

    def test_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("KTUNNEL_NAMESPACE", "ns1")
        monkeypatch.setenv("KTUNNEL_PORT", "8080")
        monkeypatch.setenv("KTUNNEL_POLL_INTERVAL", "1s")
        monkeypatch.setenv("KTUNNEL_TIMEOUT", "2m")
        monkeypatch.setenv("KTUNNEL_LOG_LEVEL", "debug")

        settings = TunnelSettings()
        assert settings.namespace == "ns1"
        assert settings.port == 8080
        assert settings.poll_interval == Duration(1)
        assert isinstance(settings.timeout, Duration)
        assert settings.timeout == "2m"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port": 0},
            {"port": 65536},
            {"replicas": 0},
            {"namespace": ""},
            {"poll_interval": "0s"},
            {"poll_interval": "-1s"},
            {"timeout": "soon"},
            {"timeout": "0s"},
            {"unknown": "field"},
        ],
    )
    def test_invalid_values(self, overrides) -> None:
        with pytest.raises(pydantic.ValidationError):
            TunnelSettings(**overrides)

    def test_validates_assignment(self) -> None:
        settings = TunnelSettings()
        with pytest.raises(pydantic.ValidationError):
            settings.port = 70000
