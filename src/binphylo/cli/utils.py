"""
Shared CLI utilities for binphylo commands.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ..exceptions import BinPhyloError
from ..io.matrix import CharacterMatrix
from ..io.trees import Tree
from ..models.binary import SubstitutionModel

err_console = Console(stderr=True)


class OutputFormat(str, Enum):
    """Output format."""
    TEXT = "text"
    NEWICK = "newick"
    JSON = "json"


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """
    Route library logging to stderr through rich.

    ``--verbose`` shows DEBUG progress, ``--quiet`` only warnings.
    """
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    root = logging.getLogger("binphylo")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False


def fail(message: str, error: Optional[Exception] = None) -> None:
    """Print an error and exit with status 1."""
    err_console.print(f"[red]Error: {message}[/red]")
    if error is not None:
        err_console.print(f"Details: {error}")
    raise typer.Exit(code=1)


def load_matrix(path: Path, missing: str = "?") -> CharacterMatrix:
    try:
        return CharacterMatrix.from_phylip(path, missing=missing)
    except BinPhyloError as e:
        fail(f"Could not load character matrix from {path}", e)


def load_tree(path: Path) -> Tree:
    try:
        return Tree.from_file(path)
    except BinPhyloError as e:
        fail(f"Could not load tree from {path}", e)


def build_model(
    n_states: int,
    gamma_categories: int,
    alpha: float,
    ascertainment: bool,
) -> SubstitutionModel:
    try:
        return SubstitutionModel(
            n_states=n_states,
            n_categories=gamma_categories,
            gamma_shape=alpha,
            ascertainment=ascertainment,
        )
    except BinPhyloError as e:
        fail("Invalid model settings", e)


def write_output(text: str, output: Optional[Path]) -> None:
    """Write to a file, or to stdout when no file is given."""
    if output:
        with open(output, "w") as f:
            f.write(text if text.endswith("\n") else text + "\n")
    else:
        typer.echo(text)
