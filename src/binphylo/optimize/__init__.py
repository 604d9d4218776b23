"""
Tree search and maximum likelihood optimization.

- **Moves**: NNI and SPR rearrangements as pure candidate generators
- **Parsimony Ratchet**: perturbed-weight hill climbing
- **Likelihood**: joint topology, branch-length and model optimization
"""

from binphylo.optimize.moves import Move, nni_neighbors, spr_neighbors
from binphylo.optimize.ratchet import ParsimonyRatchet, local_search
from binphylo.optimize.likelihood import LikelihoodOptimizer

__all__ = [
    "Move",
    "nni_neighbors",
    "spr_neighbors",
    "ParsimonyRatchet",
    "local_search",
    "LikelihoodOptimizer",
]
