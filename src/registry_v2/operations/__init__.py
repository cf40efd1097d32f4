"""
Operations package - presentation and error mapping for the CLI.

Keeps CLI commands thin: printers own all human-readable output and
mappers own the exception-to-exit-code policy.
"""
from .mappers import EXIT_CODES, exit_code_for, run_and_exit

__all__ = ["EXIT_CODES", "exit_code_for", "run_and_exit"]
