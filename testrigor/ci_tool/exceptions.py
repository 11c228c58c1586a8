"""Errors raised while driving a testRigor run."""


class TestRigorError(RuntimeError):
    """Base class for all errors raised by the CI tool."""

    __test__ = False


class TransportError(TestRigorError):
    """The HTTP request could not be performed at all."""


class RemoteFatalError(TestRigorError):
    """The service answered with a status that cannot be recovered from."""

    def __init__(self, status_code: int, message: str) -> None:
        """Store the status code next to the extracted message."""
        self.status_code = status_code
        self.message = message
        super().__init__(f"API error (status {status_code}): {message}")


class ReportNotReadyError(TestRigorError):
    """The report endpoint says the report is still being generated."""


class ReportRetriesExhaustedError(TestRigorError):
    """The report never became ready within the retry budget."""

    def __init__(self, attempts: int) -> None:
        """Record how many attempts were made."""
        self.attempts = attempts
        super().__init__(f"report not ready after {attempts} attempts")


class RunTimeoutError(TestRigorError):
    """The run did not reach a terminal state before the local deadline."""


class RunFatalError(TestRigorError):
    """Polling ended on an unrecoverable error."""


class RunCanceledError(TestRigorError):
    """The caller asked to stop waiting for the run."""


class ConfigError(ValueError):
    """Configuration is missing or cannot be parsed."""
