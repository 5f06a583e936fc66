"""Concept Crafter: guided video concept interviews and summaries."""

from __future__ import annotations

from typing import Optional

__all__ = ["__version__", "run_cli"]

__version__ = "0.1.0"


def run_cli(argv: Optional[list[str]] = None) -> None:
    """Proxy to :mod:`concept_crafter.cli.run_cli` for convenience."""

    from .cli import run_cli as _run_cli_impl

    _run_cli_impl(argv)
