"""
Parsimony tree search: hill climbing and the Parsimony Ratchet (Nixon 1999).
"""

import logging
import time
from typing import Optional

import numpy as np

from ..config import RatchetConfig
from ..core.distance import hamming_distances
from ..core.nj import neighbor_joining
from ..core.parsimony import FitchScorer
from ..io.matrix import CharacterMatrix
from ..io.trees import Tree, TreeScore
from ..results import InferenceResult
from .moves import evaluate_moves, neighbors

logger = logging.getLogger(__name__)

# Score differences below this are ties
_SCORE_EPS = 1e-9


def local_search(
    tree: Tree,
    scorer: FitchScorer,
    pattern_weights: Optional[np.ndarray] = None,
    rearrangement: str = "nni",
    spr_radius: Optional[int] = None,
    n_jobs: int = 1,
) -> tuple[Tree, float, int]:
    """
    Best-improvement hill climbing on parsimony length.

    Parameters
    ----------
    tree : Tree
        Starting tree
    scorer : FitchScorer
        Scorer bound to the character matrix
    pattern_weights : ndarray, optional
        Weight per site pattern (default: observed pattern counts)
    rearrangement : str
        'nni' or 'spr'
    spr_radius : int, optional
        Regraft distance limit for SPR
    n_jobs : int
        Threads used to score candidates

    Returns
    -------
    tuple
        (tree, score, number of accepted moves); the tree is the input
        itself when no move improves it
    """
    current = tree
    current_score = scorer.score(current, pattern_weights)
    if tree.n_leaves < 4:
        return current, current_score, 0

    def score_move(move):
        return scorer.score(move.tree, pattern_weights)

    n_moves = 0
    while True:
        moves = neighbors(current, rearrangement, spr_radius)
        if not moves:
            break
        scores = evaluate_moves(moves, score_move, n_jobs)
        best = int(np.argmin(scores))
        if scores[best] >= current_score - _SCORE_EPS:
            break
        current, current_score = moves[best].tree, scores[best]
        n_moves += 1
    return current, current_score, n_moves


def _without_lengths(tree: Tree, score: float) -> Tree:
    result = tree.copy()
    for node in result.nodes:
        node.branch_length = 0.0
    result.score = TreeScore(method="parsimony", value=score)
    return result


class ParsimonyRatchet:
    """
    Parsimony Ratchet heuristic search.

    Each iteration perturbs the site weights, hill-climbs under the
    perturbed weights from the current best tree, then hill-climbs again
    under the original weights. The result replaces the current best when
    its length is less than or equal to the best length, so the search can
    drift across plateaus of equally parsimonious trees.

    Parameters
    ----------
    matrix : CharacterMatrix
        Character data
    config : RatchetConfig, optional
        Search settings
    """

    def __init__(self, matrix: CharacterMatrix, config: Optional[RatchetConfig] = None):
        self.matrix = matrix
        self.config = config if config is not None else RatchetConfig()
        self.scorer = FitchScorer(matrix)
        self.rng = np.random.default_rng(self.config.seed)

    def perturbed_weights(self) -> np.ndarray:
        """Draw one set of perturbed site weights, folded onto site patterns."""
        n = self.matrix.n_sites
        cfg = self.config
        if cfg.perturbation == "bootstrap":
            site_weights = self.rng.multinomial(n, np.full(n, 1.0 / n)).astype(float)
        else:
            site_weights = np.ones(n)
            k = max(1, int(round(cfg.upweight_fraction * n)))
            chosen = self.rng.choice(n, size=k, replace=False)
            site_weights[chosen] = cfg.upweight_factor
        return self.scorer.site_patterns.reweight(site_weights)

    def _search(self, tree: Tree, pattern_weights: Optional[np.ndarray] = None):
        cfg = self.config
        return local_search(
            tree,
            self.scorer,
            pattern_weights,
            rearrangement=cfg.rearrangement,
            spr_radius=cfg.spr_radius,
            n_jobs=cfg.n_jobs,
        )

    def run(self, start_tree: Optional[Tree] = None) -> InferenceResult:
        """
        Run the ratchet.

        Parameters
        ----------
        start_tree : Tree, optional
            Starting topology; defaults to Neighbor Joining on Hamming
            distances

        Returns
        -------
        InferenceResult
            Best tree (topology only, all branch lengths 0) with its
            parsimony length, the best length after every iteration, and
            the equally parsimonious topologies found

        Raises
        ------
        ValidationError
            If the start tree's taxa differ from the matrix taxa
        """
        cfg = self.config
        start = time.perf_counter()

        if start_tree is None:
            start_tree = neighbor_joining(hamming_distances(self.matrix))
        else:
            start_tree.leaf_rows(self.matrix.taxa)
            if not start_tree.is_binary():
                logger.info("Resolving multifurcations of the starting tree")
                start_tree = start_tree.resolve_polytomies()

        best_tree, best_score, n_moves = self._search(start_tree)
        history = [best_score]
        equal = {best_tree.topology_key(): best_tree}
        logger.info(
            "Initial parsimony length %g after %d hill-climbing moves", best_score, n_moves
        )

        iteration = 0
        stale = 0
        converged = best_tree.n_leaves < 4
        while not converged and iteration < cfg.max_iterations:
            if cfg.time_limit is not None and time.perf_counter() - start >= cfg.time_limit:
                logger.info("Ratchet time limit reached after %d iterations", iteration)
                break
            iteration += 1

            perturbed, _, _ = self._search(best_tree, self.perturbed_weights())
            candidate, score, _ = self._search(perturbed)

            if score < best_score - _SCORE_EPS:
                best_tree, best_score = candidate, score
                equal = {candidate.topology_key(): candidate}
                stale = 0
                logger.info("Iteration %d: new best length %g", iteration, score)
            else:
                stale += 1
                if score <= best_score + _SCORE_EPS:
                    best_tree = candidate
                    key = candidate.topology_key()
                    if key not in equal and len(equal) < cfg.max_equal_trees:
                        equal[key] = candidate
                logger.debug(
                    "Iteration %d: length %g (best %g, %d without improvement)",
                    iteration, score, best_score, stale,
                )
            history.append(best_score)

            if iteration >= cfg.min_iterations and stale >= cfg.patience:
                converged = True

        elapsed = time.perf_counter() - start
        logger.info(
            "Ratchet finished: length %g, %d iterations, %d equally parsimonious trees",
            best_score, iteration, len(equal),
        )
        return InferenceResult(
            method="parsimony",
            tree=_without_lengths(best_tree, best_score),
            score=best_score,
            history=history,
            iterations=iteration,
            converged=converged,
            elapsed=elapsed,
            equal_trees=[_without_lengths(t, best_score) for t in equal.values()],
        )
