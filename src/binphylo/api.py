"""
High-level API for binphylo.

Provides simple entry points for the common workflows: distances,
Neighbor Joining, the Parsimony Ratchet and maximum-likelihood optimization.
Inputs may be objects, file paths, or (for trees) Newick strings.
"""

import logging
import time
from pathlib import Path
from typing import Mapping, Optional, Union

from .config import LikelihoodConfig, RatchetConfig, resolve_config
from .core.distance import DistanceMatrix, hamming_distances
from .core.likelihood import LikelihoodCalculator
from .core.nj import neighbor_joining
from .core.parsimony import acctran, parsimony_score
from .exceptions import ValidationError
from .io.matrix import CharacterMatrix
from .io.trees import Tree, TreeScore
from .models.binary import SubstitutionModel
from .optimize.likelihood import LikelihoodOptimizer
from .optimize.ratchet import ParsimonyRatchet
from .results import InferenceResult

logger = logging.getLogger(__name__)

MatrixLike = Union[str, Path, CharacterMatrix, Mapping]
TreeLike = Union[str, Path, Tree]


def _load_matrix(matrix: MatrixLike) -> CharacterMatrix:
    """
    Load a character matrix.

    Parameters
    ----------
    matrix : str, Path, Mapping or CharacterMatrix
        Path to a PHYLIP-style matrix file, a taxon-to-states mapping, or
        a CharacterMatrix

    Returns
    -------
    CharacterMatrix

    Raises
    ------
    FileNotFoundError
        If the matrix file doesn't exist
    """
    if isinstance(matrix, CharacterMatrix):
        return matrix
    if isinstance(matrix, Mapping):
        return CharacterMatrix(matrix)

    path = Path(matrix)
    if not path.exists():
        raise FileNotFoundError(f"Character matrix file not found: {path}")
    return CharacterMatrix.from_phylip(path)


def _load_tree(tree: TreeLike) -> Tree:
    """
    Load tree from Newick file or string.

    Parameters
    ----------
    tree : str, Path, or Tree
        Path to tree file, Newick string, or Tree object

    Returns
    -------
    Tree
        Loaded tree object
    """
    if isinstance(tree, Tree):
        return tree

    path_or_str = str(tree)
    if not path_or_str.strip().endswith(";"):
        path = Path(path_or_str)
        if path.exists():
            return Tree.from_file(path)
    return Tree.from_newick(path_or_str)


def distance_matrix(matrix: MatrixLike) -> DistanceMatrix:
    """Pairwise Hamming distances over jointly observed sites."""
    return hamming_distances(_load_matrix(matrix))


def nj_tree(data: Union[MatrixLike, DistanceMatrix]) -> InferenceResult:
    """
    Neighbor Joining tree.

    Parameters
    ----------
    data : CharacterMatrix, DistanceMatrix, path or mapping
        Distances, or characters to compute Hamming distances from

    Returns
    -------
    InferenceResult
        Unrooted NJ tree; ``score`` is None
    """
    start = time.perf_counter()
    distances = data if isinstance(data, DistanceMatrix) else distance_matrix(data)
    tree = neighbor_joining(distances)
    return InferenceResult(
        method="nj",
        tree=tree,
        iterations=1,
        elapsed=time.perf_counter() - start,
    )


def parsimony_ratchet(
    matrix: MatrixLike,
    start_tree: Optional[TreeLike] = None,
    config: Optional[RatchetConfig] = None,
    acctran_lengths: bool = False,
    **overrides,
) -> InferenceResult:
    """
    Search for the most parsimonious tree with the Parsimony Ratchet.

    Parameters
    ----------
    matrix : CharacterMatrix, path or mapping
        Character data
    start_tree : Tree, path or Newick string, optional
        Starting topology (default: Neighbor Joining)
    config : RatchetConfig, optional
        Search settings
    acctran_lengths : bool
        Give the returned trees ACCTRAN change counts as branch lengths
    **overrides
        Any RatchetConfig field, e.g. ``max_iterations=50``

    Returns
    -------
    InferenceResult

    Examples
    --------
    >>> result = parsimony_ratchet("data.phy", max_iterations=20, seed=1)
    >>> print(result.summary())
    """
    matrix = _load_matrix(matrix)
    cfg = resolve_config(RatchetConfig, config, **overrides)
    tree = _load_tree(start_tree) if start_tree is not None else None
    result = ParsimonyRatchet(matrix, cfg).run(tree)
    if not acctran_lengths:
        return result

    return InferenceResult(
        method=result.method,
        tree=acctran(result.tree, matrix),
        score=result.score,
        history=result.history,
        iterations=result.iterations,
        converged=result.converged,
        elapsed=result.elapsed,
        equal_trees=[acctran(t, matrix) for t in result.equal_trees],
    )


def optimize_likelihood(
    matrix: MatrixLike,
    tree: Optional[TreeLike] = None,
    model: Optional[SubstitutionModel] = None,
    config: Optional[LikelihoodConfig] = None,
    **overrides,
) -> InferenceResult:
    """
    Jointly optimize topology, branch lengths and model by maximum likelihood.

    Parameters
    ----------
    matrix : CharacterMatrix, path or mapping
        Character data
    tree : Tree, path or Newick string, optional
        Starting tree (default: Neighbor Joining)
    model : SubstitutionModel, optional
        Starting model (default: equal rates, one rate category)
    config : LikelihoodConfig, optional
        Optimizer settings
    **overrides
        Any LikelihoodConfig field, e.g. ``optimize_topology=False``

    Returns
    -------
    InferenceResult
        ``score`` is the final log-likelihood and ``model`` the fitted model

    Examples
    --------
    >>> model = SubstitutionModel(n_categories=4, ascertainment=True)
    >>> result = optimize_likelihood("data.phy", model=model)
    >>> result.model.gamma_shape
    """
    matrix = _load_matrix(matrix)
    cfg = resolve_config(LikelihoodConfig, config, **overrides)
    start_tree = _load_tree(tree) if tree is not None else neighbor_joining(hamming_distances(matrix))
    return LikelihoodOptimizer(matrix, start_tree, model, cfg).optimize()


def score_tree(
    matrix: MatrixLike,
    tree: TreeLike,
    method: str = "parsimony",
    model: Optional[SubstitutionModel] = None,
) -> Tree:
    """
    Score a fixed tree without changing it.

    Parameters
    ----------
    matrix : CharacterMatrix, path or mapping
        Character data
    tree : Tree, path or Newick string
        Tree to score
    method : str
        'parsimony' or 'likelihood'
    model : SubstitutionModel, optional
        Model for likelihood scoring

    Returns
    -------
    Tree
        Copy of the tree carrying a TreeScore
    """
    matrix = _load_matrix(matrix)
    tree = _load_tree(tree)
    if method == "parsimony":
        value = parsimony_score(tree, matrix)
        return tree.with_score(TreeScore(method="parsimony", value=value))
    if method == "likelihood":
        if model is None:
            model = SubstitutionModel(n_states=matrix.n_states)
        value = LikelihoodCalculator(matrix).compute_log_likelihood(tree, model)
        return tree.with_score(TreeScore(method="likelihood", value=value, params=model.to_dict()))
    raise ValidationError(
        f"Unknown scoring method '{method}'",
        suggestion="Use 'parsimony' or 'likelihood'.",
    )
