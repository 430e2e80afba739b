"""Tests for core/errors.py."""

from pactlayer.core.errors import (
    ConfigurationError,
    ExitCode,
    PublishConflictError,
    StateSetupError,
    TransportError,
    VerificationMismatch,
    format_error_message,
    main_with_error_handling,
)


class TestExitCodes:
    def test_error_exit_codes(self):
        assert ConfigurationError("x").exit_code == ExitCode.CONFIG_ERROR
        assert TransportError("x").exit_code == ExitCode.TRANSPORT_ERROR
        assert PublishConflictError("x").exit_code == ExitCode.PUBLISH_CONFLICT
        assert StateSetupError("x").exit_code == ExitCode.VERIFICATION_FAILED


class TestMainWithErrorHandling:
    """Tests for the CLI error handling decorator."""

    def test_success_passes_through(self):
        @main_with_error_handling()
        def command() -> int:
            return ExitCode.SUCCESS

        assert command() == 0

    def test_pactlayer_error_maps_to_exit_code(self):
        @main_with_error_handling()
        def command() -> int:
            raise ConfigurationError("missing broker URL", {"flag": "--broker-url"})

        assert command() == ExitCode.CONFIG_ERROR

    def test_keyboard_interrupt(self):
        @main_with_error_handling()
        def command() -> int:
            raise KeyboardInterrupt

        assert command() == 130

    def test_print_errors_shows_formatted_message(self, capsys):
        @main_with_error_handling(log_errors=False, print_errors=True)
        def command() -> int:
            raise ConfigurationError("missing broker URL", {"flag": "--broker-url"})

        assert command() == ExitCode.CONFIG_ERROR
        assert "missing broker URL (flag=--broker-url)" in capsys.readouterr().out

    def test_errors_not_printed_by_default(self, capsys):
        @main_with_error_handling(log_errors=False)
        def command() -> int:
            raise ConfigurationError("quiet")

        command()
        assert capsys.readouterr().out == ""

    def test_unexpected_error(self):
        @main_with_error_handling(log_errors=False)
        def command() -> int:
            raise RuntimeError("boom")

        assert command() == ExitCode.UNKNOWN_ERROR


class TestFormatting:
    def test_format_error_message_with_details(self):
        error = TransportError("Cannot reach broker", {"url": "http://broker"})
        assert format_error_message(error) == "Cannot reach broker (url=http://broker)"

    def test_format_error_message_without_details(self):
        assert format_error_message(ConfigurationError("bad")) == "bad"

    def test_state_setup_error_records_state(self):
        error = StateSetupError("failed", "order exists")
        assert error.state == "order exists"
        assert error.details == {"state": "order exists"}

    def test_verification_mismatch_str(self):
        error = VerificationMismatch(
            "Mock provider verification failed",
            missing=["a health check"],
            unexpected=[{"method": "GET", "path": "/nope"}],
        )
        assert str(error).splitlines() == [
            "Mock provider verification failed",
            "  missing: a health check",
            "  unexpected: GET /nope",
        ]
