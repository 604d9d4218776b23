"""
Core algorithms for tree inference from discrete characters.

This module provides the computational routines behind the high-level API:

- **Distances**: Hamming distances over jointly observed sites
- **Neighbor Joining**: agglomerative distance-based tree building
- **Parsimony**: Fitch/Hartigan scoring and ACCTRAN reconstruction
- **Likelihood**: Felsenstein's pruning algorithm

The high-level API (:mod:`binphylo.api`) provides easier access.
"""

from binphylo.core.matrix import create_reversible_Q, matrix_exponential
from binphylo.core.distance import DistanceMatrix, hamming_distances
from binphylo.core.nj import neighbor_joining
from binphylo.core.parsimony import (
    FitchScorer,
    acctran,
    acctran_states,
    parsimony_score,
    site_scores,
)
from binphylo.core.likelihood import LikelihoodCalculator, log_likelihood

__all__ = [
    "DistanceMatrix",
    "hamming_distances",
    "neighbor_joining",
    "FitchScorer",
    "parsimony_score",
    "site_scores",
    "acctran",
    "acctran_states",
    "LikelihoodCalculator",
    "log_likelihood",
    "matrix_exponential",
    "create_reversible_Q",
]
