"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and a command wrapper
so every Typer command handles registry errors the same way.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

T = TypeVar('T')

EXIT_CODES = {
    "RegistryApiError": 1,
    "ValueError": 2,
    "DecodeError": 2,
    "InvalidDigest": 2,
    "UnsupportedMediaType": 2,
    "TransportError": 3,
    "AuthProbeFailed": 4,
    "AuthChallengeMalformed": 4,
    "TokenRequestFailed": 4,
    "TokenResponseInvalid": 4,
    "DigestMismatch": 5,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 1: Registry returned a structured error (RegistryApiError)
    - 2: Invalid input or undecodable response (ValueError, DecodeError)
    - 3: Network failure (TransportError) or any unknown error
    - 4: Authentication negotiation failed
    - 5: Content digest mismatch

    Args:
        exc: Exception to map

    Returns:
        Exit code (3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exception to an exit code
    using typer.Exit, after printing it.

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except Exception as e:
        from .printers import print_error
        print_error(e)
        raise typer.Exit(code=exit_code_for(e)) from e
