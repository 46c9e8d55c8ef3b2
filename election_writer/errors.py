"""
election_writer/errors.py
-------------------------

Exception hierarchy.

Read errors are transient and handled per source inside a tick. Write errors
that signal a broken invariant (e.g. the signer returned no hash) propagate to
the run loop, which logs them and abandons the tick.
"""

from __future__ import annotations

from typing import Optional


class ElectionWriterError(Exception):
    """Base class for all errors raised by election_writer."""


class ConfigError(ElectionWriterError):
    pass


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class ReadError(ElectionWriterError):
    pass


class RegistryFetchError(ReadError):
    pass


class RegistryDecodeError(ReadError):
    pass


class WorkloadReadError(ReadError):
    pass


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class WriteError(ElectionWriterError):
    pass


class SignerError(WriteError):
    """The signer answered but without a raw transaction or hash."""


class SignerRequestError(WriteError):
    pass


class BaseChainRpcError(WriteError):
    def __init__(self, method: str, message: str, code: Optional[int] = None) -> None:
        super().__init__(f"{method}: {message}" + (f" (code {code})" if code is not None else ""))
        self.method = method
        self.code = code


class GasPriceError(WriteError):
    pass
