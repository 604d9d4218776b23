"""Main CLI application for binphylo."""

import typer
from pathlib import Path
from typing import Optional
from enum import Enum

from .. import __version__
from .utils import OutputFormat, setup_logging

app = typer.Typer(
    name="binphylo",
    help="Phylogenetic inference from binary character matrices",
    no_args_is_help=True,
)


class Rearrangement(str, Enum):
    """Local search move type."""
    NNI = "nni"
    SPR = "spr"


class Perturbation(str, Enum):
    """Ratchet site reweighting scheme."""
    BOOTSTRAP = "bootstrap"
    UPWEIGHT = "upweight"


class ScoreMethod(str, Enum):
    """Optimality criterion for scoring a fixed tree."""
    PARSIMONY = "parsimony"
    LIKELIHOOD = "likelihood"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"binphylo version {__version__}")
        raise typer.Exit


@app.callback()
def callback(
    version: bool = typer.Option(
        None,
        "--version",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
):
    """
    binphylo: distance, parsimony and likelihood trees from binary characters.

    Character matrices are read in sequential PHYLIP style: a header line
    '<n_taxa> <n_characters>' followed by one 'name states' record per taxon,
    with '?' for missing states.
    """


MATRIX_OPTION = typer.Option(
    ...,
    "--matrix", "-m",
    help="Character matrix file (sequential PHYLIP style)",
    exists=True,
    file_okay=True,
    dir_okay=False,
)

VERBOSE_OPTION = typer.Option(
    False,
    "--verbose", "-v",
    help="Show search progress",
)

QUIET_OPTION = typer.Option(
    False,
    "--quiet", "-q",
    help="Only show warnings and errors",
)


@app.command()
def distance(
    matrix: Path = MATRIX_OPTION,
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Write distances as JSON instead of a PHYLIP-style square matrix",
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Pairwise Hamming distances over jointly observed characters.

    Example:
        binphylo distance -m cognates.phy
    """
    from .commands.score import run_distance

    setup_logging(verbose, quiet)
    run_distance(matrix=matrix, output=output, format="json" if json_output else "text")


@app.command()
def nj(
    matrix: Path = MATRIX_OPTION,
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.NEWICK,
        "--format",
        help="Output format",
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Build a Neighbor Joining tree from Hamming distances.

    Example:
        binphylo nj -m cognates.phy -o nj.nwk
    """
    from .commands.infer import run_nj

    setup_logging(verbose, quiet)
    run_nj(matrix=matrix, output=output, format=format.value)


@app.command()
def parsimony(
    matrix: Path = MATRIX_OPTION,
    tree: Optional[Path] = typer.Option(
        None,
        "--tree", "-t",
        help="Starting tree (default: Neighbor Joining)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    max_iterations: int = typer.Option(
        100,
        "--max-iterations",
        help="Maximum ratchet iterations",
        min=1,
    ),
    min_iterations: int = typer.Option(
        10,
        "--min-iterations",
        help="Iterations run before the patience rule applies",
        min=0,
    ),
    patience: int = typer.Option(
        10,
        "--patience",
        help="Stop after this many iterations without improvement",
        min=1,
    ),
    rearrangement: Rearrangement = typer.Option(
        Rearrangement.NNI,
        "--rearrangement",
        help="Local search moves",
    ),
    perturbation: Perturbation = typer.Option(
        Perturbation.BOOTSTRAP,
        "--perturbation",
        help="Site reweighting scheme",
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility",
    ),
    time_limit: Optional[float] = typer.Option(
        None,
        "--time-limit",
        help="Stop after this many seconds (checked between iterations)",
    ),
    jobs: int = typer.Option(
        1,
        "--jobs", "-j",
        help="Threads used to score candidate moves",
        min=1,
    ),
    acctran_lengths: bool = typer.Option(
        False,
        "--acctran",
        help="Report ACCTRAN change counts as branch lengths",
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Search for the most parsimonious tree with the Parsimony Ratchet.

    Example:
        binphylo parsimony -m cognates.phy --seed 1 --acctran
        binphylo parsimony -m cognates.phy --rearrangement spr --format newick
    """
    from .commands.infer import run_parsimony

    setup_logging(verbose, quiet)
    run_parsimony(
        matrix=matrix,
        tree=tree,
        output=output,
        format=format.value,
        acctran_lengths=acctran_lengths,
        max_iterations=max_iterations,
        min_iterations=min_iterations,
        patience=patience,
        rearrangement=rearrangement.value,
        perturbation=perturbation.value,
        seed=seed,
        time_limit=time_limit,
        n_jobs=jobs,
    )


@app.command()
def ml(
    matrix: Path = MATRIX_OPTION,
    tree: Optional[Path] = typer.Option(
        None,
        "--tree", "-t",
        help="Starting tree (default: Neighbor Joining)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    format: OutputFormat = typer.Option(
        OutputFormat.TEXT,
        "--format",
        help="Output format",
    ),
    gamma_categories: int = typer.Option(
        1,
        "--gamma-categories", "-k",
        help="Discrete gamma rate categories (1 = no rate variation)",
        min=1,
    ),
    alpha: float = typer.Option(
        1.0,
        "--alpha",
        help="Starting gamma shape parameter",
    ),
    ascertainment: bool = typer.Option(
        False,
        "--ascertainment",
        help="Correct for constant characters being absent from the data",
    ),
    estimate_frequencies: bool = typer.Option(
        False,
        "--estimate-frequencies",
        help="Estimate state frequencies instead of fixing them equal",
    ),
    fixed_topology: bool = typer.Option(
        False,
        "--fixed-topology",
        help="Only optimize branch lengths and model parameters",
    ),
    max_cycles: int = typer.Option(
        20,
        "--max-cycles",
        help="Maximum optimization cycles",
        min=1,
    ),
    tolerance: float = typer.Option(
        1e-4,
        "--tolerance",
        help="Stop when a cycle gains fewer log-likelihood units than this",
    ),
    time_limit: Optional[float] = typer.Option(
        None,
        "--time-limit",
        help="Stop after this many seconds (checked between cycles)",
    ),
    jobs: int = typer.Option(
        1,
        "--jobs", "-j",
        help="Threads used to score candidate rearrangements",
        min=1,
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Jointly optimize topology, branch lengths and model by maximum likelihood.

    Example:
        binphylo ml -m cognates.phy -k 4 --ascertainment
        binphylo ml -m cognates.phy -t start.nwk --fixed-topology --format json
    """
    from .commands.infer import run_ml

    setup_logging(verbose, quiet)
    run_ml(
        matrix=matrix,
        tree=tree,
        output=output,
        format=format.value,
        gamma_categories=gamma_categories,
        alpha=alpha,
        ascertainment=ascertainment,
        optimize_frequencies=estimate_frequencies,
        optimize_topology=not fixed_topology,
        max_cycles=max_cycles,
        tolerance=tolerance,
        time_limit=time_limit,
        n_jobs=jobs,
    )


@app.command()
def score(
    matrix: Path = MATRIX_OPTION,
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Tree file (Newick format)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    method: ScoreMethod = typer.Option(
        ScoreMethod.PARSIMONY,
        "--method",
        help="Optimality criterion",
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Output file (default: stdout)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Write results as JSON",
    ),
    per_site: bool = typer.Option(
        False,
        "--sites",
        help="Also report the score of every character",
    ),
    gamma_categories: int = typer.Option(
        1,
        "--gamma-categories", "-k",
        help="Discrete gamma rate categories (likelihood only)",
        min=1,
    ),
    alpha: float = typer.Option(
        1.0,
        "--alpha",
        help="Gamma shape parameter (likelihood only)",
    ),
    ascertainment: bool = typer.Option(
        False,
        "--ascertainment",
        help="Ascertainment-bias correction (likelihood only)",
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Score a fixed tree by parsimony length or log-likelihood.

    Example:
        binphylo score -m cognates.phy -t tree.nwk
        binphylo score -m cognates.phy -t tree.nwk --method likelihood --sites
    """
    from .commands.score import run_score

    setup_logging(verbose, quiet)
    run_score(
        matrix=matrix,
        tree=tree,
        method=method.value,
        output=output,
        format="json" if json_output else "text",
        per_site=per_site,
        gamma_categories=gamma_categories,
        alpha=alpha,
        ascertainment=ascertainment,
    )


@app.command()
def simulate(
    tree: Path = typer.Option(
        ...,
        "--tree", "-t",
        help="Tree file (Newick format with branch lengths)",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output character matrix file",
    ),
    n_sites: int = typer.Option(
        ...,
        "--sites", "-n",
        help="Number of characters to simulate",
        min=1,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Random seed for reproducibility",
    ),
    gamma_categories: int = typer.Option(
        1,
        "--gamma-categories", "-k",
        help="Discrete gamma rate categories",
        min=1,
    ),
    alpha: float = typer.Option(
        1.0,
        "--alpha",
        help="Gamma shape parameter",
    ),
    ascertainment: bool = typer.Option(
        False,
        "--variable-only",
        help="Only produce variable characters",
    ),
    output_params: bool = typer.Option(
        False,
        "--output-params",
        help="Also write simulation parameters as JSON next to the output",
    ),
    verbose: bool = VERBOSE_OPTION,
    quiet: bool = QUIET_OPTION,
):
    """
    Simulate binary characters along a tree.

    Example:
        binphylo simulate -t tree.nwk -n 500 -o sim.phy --seed 42
    """
    from .commands.simulate import run_simulate

    setup_logging(verbose, quiet)
    run_simulate(
        tree=tree,
        output=output,
        n_sites=n_sites,
        seed=seed,
        gamma_categories=gamma_categories,
        alpha=alpha,
        ascertainment=ascertainment,
        output_params=output_params,
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
