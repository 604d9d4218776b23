"""
Joint maximum-likelihood optimization of topology, branch lengths and model.
"""

import logging
import time
from typing import Optional

import numpy as np
from scipy.optimize import minimize, minimize_scalar

from ..config import LikelihoodConfig
from ..core.likelihood import LikelihoodCalculator
from ..io.matrix import CharacterMatrix
from ..io.trees import Tree, TreeScore
from ..models.binary import SubstitutionModel
from ..results import InferenceResult
from .moves import Move, evaluate_moves, nni_neighbors

logger = logging.getLogger(__name__)

# Bounds on the log of the gamma shape and on frequency log-ratios
_LOG_ALPHA_BOUNDS = (np.log(0.01), np.log(100.0))
_LOG_RATIO_BOUNDS = (-10.0, 10.0)


class LikelihoodOptimizer:
    """
    Optimize a tree and substitution model by maximum likelihood.

    Each cycle runs three phases, every one of which only accepts changes
    that raise the log-likelihood:

    - branch lengths: one bounded Brent search per edge, in log space
    - topology: NNI rearrangements, each scored after re-fitting its
      central edge; the best improving move is applied until none improves
    - model: L-BFGS-B over the gamma shape and, optionally, the state
      frequencies

    Cycles stop when one cycle gains less than ``config.tolerance``
    log-units, after ``config.max_cycles`` cycles, or when the time limit
    is exhausted.

    Parameters
    ----------
    matrix : CharacterMatrix
        Character data
    tree : Tree
        Starting tree over the matrix taxa; optimized unrooted
    model : SubstitutionModel, optional
        Starting model (default: equal rates, no gamma, no correction)
    config : LikelihoodConfig, optional
        Optimizer settings

    Raises
    ------
    ValidationError
        If tree and matrix taxa differ or the model does not fit the data
    """

    def __init__(
        self,
        matrix: CharacterMatrix,
        tree: Tree,
        model: Optional[SubstitutionModel] = None,
        config: Optional[LikelihoodConfig] = None,
    ):
        self.matrix = matrix
        self.config = config if config is not None else LikelihoodConfig()
        self.model = model if model is not None else SubstitutionModel(n_states=matrix.n_states)
        self.calc = LikelihoodCalculator(matrix)

        tree.leaf_rows(matrix.taxa)
        if tree.rooted or len(tree.root.children) == 2:
            tree = tree.unroot()
        # Rearrangements act on binary trees only
        tree = tree.resolve_polytomies()
        for node in tree.nodes:
            if node.parent is not None:
                node.branch_length = self._clamp(node.branch_length)
        self.tree = tree

        self.history: list[float] = []

    def _clamp(self, length: float) -> float:
        cfg = self.config
        return min(max(length, cfg.min_branch_length), cfg.max_branch_length)

    def log_likelihood(
        self, tree: Optional[Tree] = None, model: Optional[SubstitutionModel] = None
    ) -> float:
        """Log-likelihood of a tree and model (defaults: the current ones)."""
        return self.calc.compute_log_likelihood(
            tree if tree is not None else self.tree,
            model if model is not None else self.model,
        )

    # ------------------------------------------------------------------
    # Branch lengths
    # ------------------------------------------------------------------

    def optimize_edge(
        self, tree: Tree, node_id: int, model: SubstitutionModel, lnl: float
    ) -> float:
        """
        Fit the length of the edge above one node, in place.

        Parameters
        ----------
        tree : Tree
            Tree to modify
        node_id : int
            Node below the edge
        model : SubstitutionModel
            Current model
        lnl : float
            Log-likelihood of ``tree`` as given

        Returns
        -------
        float
            New log-likelihood (never lower than ``lnl``)
        """
        cfg = self.config
        node = tree.node(node_id)
        original = node.branch_length

        def neg_lnl(log_t):
            node.branch_length = float(np.exp(log_t))
            return -self.calc.compute_log_likelihood(tree, model)

        result = minimize_scalar(
            neg_lnl,
            bounds=(np.log(cfg.min_branch_length), np.log(cfg.max_branch_length)),
            method="bounded",
            options={"xatol": 1e-4},
        )
        if -result.fun > lnl:
            node.branch_length = float(np.exp(result.x))
            return float(-result.fun)
        node.branch_length = original
        return lnl

    def optimize_edges(self, tree: Tree, model: SubstitutionModel, lnl: float) -> float:
        """One pass of per-edge optimization over every edge, in place."""
        for node in tree.nodes:
            if node.parent is not None:
                lnl = self.optimize_edge(tree, node.id, model, lnl)
        return lnl

    # ------------------------------------------------------------------
    # Topology
    # ------------------------------------------------------------------

    def optimize_topology(
        self, tree: Tree, model: SubstitutionModel, lnl: float
    ) -> tuple[Tree, float, int]:
        """
        Apply improving NNI moves until none is left.

        Returns
        -------
        tuple
            (tree, log-likelihood, number of accepted moves)
        """
        if tree.n_leaves < 4:
            return tree, lnl, 0

        def score_move(move: Move) -> float:
            move_lnl = self.calc.compute_log_likelihood(move.tree, model)
            if self.config.optimize_edges:
                move_lnl = self.optimize_edge(move.tree, move.focus, model, move_lnl)
            return move_lnl

        accepted = 0
        while True:
            moves = nni_neighbors(tree)
            scores = evaluate_moves(moves, score_move, self.config.n_jobs)
            best = int(np.argmax(scores))
            if scores[best] <= lnl + 1e-8:
                break
            tree, lnl = moves[best].tree, scores[best]
            accepted += 1
            logger.debug("Accepted NNI, log-likelihood %.6f", lnl)
        return tree, lnl, accepted

    # ------------------------------------------------------------------
    # Model parameters
    # ------------------------------------------------------------------

    def _model_parameters(self, model: SubstitutionModel):
        """Starting vector, bounds and decoder for the free model parameters."""
        cfg = self.config
        x0, bounds = [], []
        fit_freqs = cfg.optimize_frequencies
        fit_alpha = cfg.optimize_gamma and model.n_categories > 1

        if fit_freqs:
            pi = model.pi
            x0.extend(np.log(pi[:-1] / pi[-1]))
            bounds.extend([_LOG_RATIO_BOUNDS] * (model.n_states - 1))
        if fit_alpha:
            x0.append(np.log(model.gamma_shape))
            bounds.append(_LOG_ALPHA_BOUNDS)

        def decode(x: np.ndarray) -> SubstitutionModel:
            changes = {}
            pos = 0
            if fit_freqs:
                ratios = np.exp(np.append(x[: model.n_states - 1], 0.0))
                changes["frequencies"] = tuple(ratios / ratios.sum())
                pos = model.n_states - 1
            if fit_alpha:
                changes["gamma_shape"] = float(np.exp(x[pos]))
            return model.with_params(**changes)

        return np.array(x0), bounds, decode

    def optimize_model(
        self, tree: Tree, model: SubstitutionModel, lnl: float
    ) -> tuple[SubstitutionModel, float]:
        """
        Fit the free model parameters on a fixed tree.

        Returns
        -------
        tuple
            (model, log-likelihood); the input model when nothing improves
        """
        x0, bounds, decode = self._model_parameters(model)
        if x0.size == 0:
            return model, lnl

        def neg_lnl(x):
            return -self.calc.compute_log_likelihood(tree, decode(x))

        result = minimize(neg_lnl, x0, method="L-BFGS-B", bounds=bounds)
        if -result.fun > lnl:
            return decode(result.x), float(-result.fun)
        return model, lnl

    def _has_model_parameters(self) -> bool:
        cfg = self.config
        return cfg.optimize_frequencies or (cfg.optimize_gamma and self.model.n_categories > 1)

    # ------------------------------------------------------------------

    def optimize(self) -> InferenceResult:
        """
        Run optimization cycles.

        Returns
        -------
        InferenceResult
            Optimized tree (with branch lengths), fitted model,
            log-likelihood and the log-likelihood after every cycle
        """
        cfg = self.config
        start = time.perf_counter()

        tree, model = self.tree, self.model
        lnl = self.log_likelihood(tree, model)
        self.history = [lnl]
        logger.info("Initial log-likelihood: %.6f", lnl)

        cycles = 0
        converged = False
        while cycles < cfg.max_cycles:
            if cfg.time_limit is not None and time.perf_counter() - start >= cfg.time_limit:
                logger.info("Likelihood time limit reached after %d cycles", cycles)
                break
            cycles += 1
            before = lnl

            if cfg.optimize_edges:
                lnl = self.optimize_edges(tree, model, lnl)
            if cfg.optimize_topology:
                tree, lnl, accepted = self.optimize_topology(tree, model, lnl)
                if accepted:
                    logger.debug("Cycle %d: %d NNI moves accepted", cycles, accepted)
            if self._has_model_parameters():
                model, lnl = self.optimize_model(tree, model, lnl)

            self.history.append(lnl)
            logger.info("Cycle %d: log-likelihood %.6f (%s)", cycles, lnl, model.describe())
            if lnl - before < cfg.tolerance:
                converged = True
                break

        self.tree, self.model = tree, model
        result_tree = tree.copy()
        result_tree.score = TreeScore(method="likelihood", value=lnl, params=model.to_dict())
        return InferenceResult(
            method="likelihood",
            tree=result_tree,
            score=lnl,
            model=model,
            history=list(self.history),
            iterations=cycles,
            converged=converged,
            elapsed=time.perf_counter() - start,
        )
