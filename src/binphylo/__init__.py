"""
binphylo: phylogenetic inference from binary character matrices.

Distance, parsimony and likelihood tree inference for presence/absence
data such as cognate sets across languages.

Quick Start
-----------
Build a Neighbor Joining tree:

>>> from binphylo import CharacterMatrix, nj_tree
>>> matrix = CharacterMatrix.from_phylip("cognates.phy")
>>> print(nj_tree(matrix).newick)

Search for the most parsimonious tree:

>>> from binphylo import parsimony_ratchet
>>> result = parsimony_ratchet(matrix, max_iterations=50, seed=1)
>>> print(result.summary())

Fit a tree by maximum likelihood:

>>> from binphylo import SubstitutionModel, optimize_likelihood
>>> model = SubstitutionModel(n_categories=4, ascertainment=True)
>>> result = optimize_likelihood(matrix, tree=result.tree, model=model)
>>> print(f"lnL = {result.score:.3f}, alpha = {result.model.gamma_shape:.3f}")
"""

__version__ = "0.1.0"

# High-level API (simple interface)
from .api import (
    distance_matrix,
    nj_tree,
    parsimony_ratchet,
    optimize_likelihood,
    score_tree,
)
from .results import InferenceResult

# Configuration
from .config import LikelihoodConfig, RatchetConfig

# Errors
from .exceptions import (
    BinPhyloError,
    DegenerateInputError,
    InsufficientOverlapError,
    NewickParseError,
    UnknownTaxonError,
    ValidationError,
)

# I/O classes
from .io.matrix import CharacterMatrix
from .io.trees import Tree, TreeNode, TreeScore

# Models and core routines (expert use)
from .models.binary import SubstitutionModel
from .core.distance import DistanceMatrix, hamming_distances
from .core.nj import neighbor_joining
from .core.parsimony import acctran, parsimony_score, site_scores
from .core.likelihood import LikelihoodCalculator, log_likelihood
from .simulate.binary import simulate_characters

__all__ = [
    # Simple API - Start here!
    "distance_matrix",
    "nj_tree",
    "parsimony_ratchet",
    "optimize_likelihood",
    "score_tree",
    "InferenceResult",

    # Configuration
    "RatchetConfig",
    "LikelihoodConfig",

    # Errors
    "BinPhyloError",
    "ValidationError",
    "InsufficientOverlapError",
    "UnknownTaxonError",
    "DegenerateInputError",
    "NewickParseError",

    # Data
    "CharacterMatrix",
    "Tree",
    "TreeNode",
    "TreeScore",
    "SubstitutionModel",

    # Core (expert)
    "DistanceMatrix",
    "hamming_distances",
    "neighbor_joining",
    "parsimony_score",
    "site_scores",
    "acctran",
    "LikelihoodCalculator",
    "log_likelihood",
    "simulate_characters",

    # Version
    "__version__",
]
