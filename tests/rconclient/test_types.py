"""Unit tests for the RCON client data classes."""

from datetime import UTC, datetime

import pytest

from topupbot.rconclient.types import (
    CommandResult,
    EndpointConfig,
    EndpointRuntimeState,
)


def make_endpoint(**overrides: object) -> EndpointConfig:
    """Create an enabled endpoint config."""
    values = {
        "key": "main",
        "host": "127.0.0.1",
        "port": 27020,
        "password": "supersecret",
        "enabled": True,
    }
    values.update(overrides)
    return EndpointConfig(**values)


class TestEndpointConfig:
    """Test suite for building endpoint configs."""

    def test_from_mapping_fills_defaults(self) -> None:
        """Test that display name defaults to the key and enabled must be True."""
        config = EndpointConfig.from_mapping(
            "main",
            {"host": "10.0.0.1", "port": "27020", "password": "pw", "enabled": "yes"},
        )

        assert config is not None
        assert config.port == 27020  # noqa: PLR2004
        assert config.display_name == "main"
        assert config.enabled is False
        assert config.target == "10.0.0.1:27020"

    @pytest.mark.parametrize("missing", ["host", "port", "password"])
    def test_from_mapping_rejects_missing_fields(self, missing: str) -> None:
        """Test that entries without host, port or password are not usable."""
        raw = {"host": "10.0.0.1", "port": 27020, "password": "pw"}
        raw[missing] = ""

        assert EndpointConfig.from_mapping("main", raw) is None

    def test_from_mapping_rejects_non_numeric_port(self) -> None:
        """Test that a non numeric port raises ValueError."""
        with pytest.raises(ValueError):  # noqa: PT011
            EndpointConfig.from_mapping(
                "main",
                {"host": "10.0.0.1", "port": "rcon", "password": "pw"},
            )

    def test_password_is_hidden(self) -> None:
        """Test that the password never shows in repr and is masked."""
        config = make_endpoint()

        assert "supersecret" not in repr(config)
        assert config.masked_password == "su*******et"
        assert make_endpoint(password="abc").masked_password == "***"  # noqa: S106


class TestEndpointRuntimeState:
    """Test suite for endpoint health tracking."""

    def test_untested_endpoint_is_fully_healthy(self) -> None:
        """Test that an endpoint without commands scores 100."""
        state = EndpointRuntimeState(make_endpoint())

        assert state.success_rate is None
        assert state.health_score == 100  # noqa: PLR2004
        assert state.is_available

    def test_health_score_combines_success_rate_and_failures(self) -> None:
        """Test that each consecutive failure costs ten points."""
        state = EndpointRuntimeState(
            make_endpoint(),
            total_commands=4,
            successful_commands=3,
            consecutive_failures=1,
        )

        assert state.success_rate == 75  # noqa: PLR2004
        assert state.health_score == 65  # noqa: PLR2004

    def test_health_score_is_clamped(self) -> None:
        """Test that the score never drops below zero."""
        state = EndpointRuntimeState(
            make_endpoint(),
            total_commands=10,
            successful_commands=0,
            consecutive_failures=10,
        )

        assert state.health_score == 0

    def test_failure_threshold_makes_endpoint_unavailable(self) -> None:
        """Test that three consecutive failures make the endpoint unavailable."""
        state = EndpointRuntimeState(make_endpoint())

        for _ in range(EndpointRuntimeState.FAILURE_THRESHOLD):
            assert state.is_available
            state.record_failure("Connection failed")

        assert not state.is_available
        assert state.snapshot().status == "offline"

    def test_success_and_reset_clear_failures(self) -> None:
        """Test that a success or a reset clears consecutive failures."""
        now = datetime.now(UTC)
        state = EndpointRuntimeState(make_endpoint())
        state.record_failure("boom")
        state.record_success(now)

        assert state.consecutive_failures == 0
        assert state.last_connection_at == now
        assert state.last_error is None

        state.record_failure("boom")
        state.reset()

        assert state.consecutive_failures == 0
        assert state.last_error is None

    def test_disabled_endpoint_is_never_available(self) -> None:
        """Test that a disabled endpoint is offline regardless of health."""
        status = EndpointRuntimeState(make_endpoint(enabled=False)).snapshot()

        assert not status.is_available
        assert status.status == "offline"


class TestCommandResult:
    """Test suite for command result invariants."""

    def test_failure_without_error_gets_default_text(self) -> None:
        """Test that a failure always carries an error."""
        result = CommandResult.failure("main", "")

        assert result.error == "Unknown RCON error"
        assert result.response is None

    def test_partial_results_are_rejected(self) -> None:
        """Test that success with an error, or failure with a response, raise."""
        with pytest.raises(ValueError, match="successful"):
            CommandResult(success=True, endpoint_key="main", error="boom")
        with pytest.raises(ValueError, match="failed"):
            CommandResult(success=False, endpoint_key="main", response="ok")


def test_health_score_of_mostly_successful_endpoint() -> None:
    """Test that 8 of 10 successes and one recent failure score 70."""
    state = EndpointRuntimeState(
        make_endpoint(),
        total_commands=10,
        successful_commands=8,
        consecutive_failures=1,
    )

    assert state.health_score == pytest.approx(70)
