"""Error taxonomy shared by the codec, chain gateway and control loop."""

from __future__ import annotations

E_DECODE = "E_DECODE"
E_ACCOUNT_NOT_FOUND = "E_ACCOUNT_NOT_FOUND"
E_SUBMISSION = "E_SUBMISSION"
E_NO_PRICE = "E_NO_PRICE"
E_CONFIG = "E_CONFIG"
E_INVALID_PARAMS = "E_INVALID_PARAMS"
E_CHAIN_READ = "E_CHAIN_READ"


class AutomationError(RuntimeError):
    """Base class for errors raised while checking or driving an automation account."""

    code = "E_AUTOMATION"


class DecodeError(AutomationError):
    """Account bytes are too short or malformed for the requested layout."""

    code = E_DECODE


class AccountNotFound(AutomationError):
    """The address has no backing account on chain."""

    code = E_ACCOUNT_NOT_FOUND

    def __init__(self, address: str) -> None:
        super().__init__(f"{E_ACCOUNT_NOT_FOUND}: account not found address={address}")
        self.address = address


class ChainReadError(AutomationError):
    """RPC read failed after retries and provider rotation."""

    code = E_CHAIN_READ


class SubmissionError(AutomationError):
    """Instruction send or confirmation failed."""

    code = E_SUBMISSION


class NoPriceAvailable(AutomationError):
    """The price source has no quote for the token."""

    code = E_NO_PRICE

    def __init__(self, token_address: str, detail: str = "") -> None:
        message = f"{E_NO_PRICE}: no price available token={token_address}"
        if detail:
            message = f"{message} detail={detail}"
        super().__init__(message)
        self.token_address = token_address


class ConfigurationError(AutomationError):
    """Fatal at startup: the controller cannot run with the given settings."""

    code = E_CONFIG


class InvalidParameters(ConfigurationError, ValueError):
    """Instruction parameters rejected at the input boundary."""

    code = E_INVALID_PARAMS
