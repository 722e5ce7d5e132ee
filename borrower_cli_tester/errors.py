"""Error kinds raised by the lifecycle steps."""


class HarnessError(Exception):
    """Base class for errors that fail a lifecycle step."""


class CryptoError(HarnessError):
    """Raised when mnemonic generation or key derivation fails."""


class NetworkError(HarnessError):
    """Raised when a faucet request cannot be completed."""


class ProcessError(HarnessError):
    """Raised when the CLI cannot be spawned or exits with a non-zero code."""


class IoError(HarnessError):
    """Raised on filesystem failures."""


class ParsingError(HarnessError):
    """Raised when structured output or the contract id cannot be parsed."""


class RetryExhaustedError(HarnessError):
    """Raised when every attempt of a retried step has failed.

    Carries the number of attempts made and the error of the last attempt.
    """

    def __init__(self, attempts: int, last_error: HarnessError) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{last_error} (after {attempts} attempts)")
