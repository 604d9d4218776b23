"""
Tests for parsimony hill climbing and the Parsimony Ratchet.
"""

import numpy as np
import pytest

from binphylo.config import RatchetConfig
from binphylo.core.parsimony import FitchScorer, parsimony_score
from binphylo.exceptions import ValidationError
from binphylo.io.matrix import CharacterMatrix
from binphylo.io.trees import Tree
from binphylo.optimize.ratchet import ParsimonyRatchet, local_search


class TestLocalSearch:
    """Test best-improvement hill climbing."""

    def test_spr_reaches_optimum(self, wrong_tree, cherry_tree, cherry_matrix):
        scorer = FitchScorer(cherry_matrix)
        tree, score, n_moves = local_search(wrong_tree, scorer, rearrangement="spr")
        assert score == 6
        assert n_moves >= 1
        assert tree.same_topology(cherry_tree)

    def test_nni_stops_on_plateau(self, wrong_tree, cherry_matrix):
        # every interchange of wrong_tree is equally long or longer
        tree, score, n_moves = local_search(wrong_tree, FitchScorer(cherry_matrix))
        assert tree is wrong_tree
        assert score == 9
        assert n_moves == 0

    def test_optimum_is_fixed_point(self, cherry_tree, cherry_matrix):
        scorer = FitchScorer(cherry_matrix)
        tree, score, n_moves = local_search(cherry_tree, scorer)
        assert n_moves == 0
        assert tree is cherry_tree
        assert score == 6

    def test_weighted_search(self, cherry_tree, cherry_matrix):
        scorer = FitchScorer(cherry_matrix)
        weights = scorer.weights * 3
        _, score, _ = local_search(cherry_tree, scorer, pattern_weights=weights)
        assert score == 18

    def test_small_tree_returned_as_is(self, small_matrix):
        tree = Tree.from_newick("(A,B,C);")
        result, score, n_moves = local_search(tree, FitchScorer(small_matrix))
        assert result is tree
        assert score == 4
        assert n_moves == 0


class TestPerturbation:
    """Test site reweighting."""

    def test_bootstrap_weights(self, cherry_matrix):
        ratchet = ParsimonyRatchet(cherry_matrix, RatchetConfig(seed=5))
        weights = ratchet.perturbed_weights()
        assert weights.shape == (cherry_matrix.patterns().n_patterns,)
        assert weights.sum() == pytest.approx(cherry_matrix.n_sites)
        assert np.all(weights >= 0)

    def test_upweight_weights(self, cherry_matrix):
        cfg = RatchetConfig(seed=5, perturbation="upweight", upweight_fraction=0.5)
        weights = ParsimonyRatchet(cherry_matrix, cfg).perturbed_weights()
        # three of six sites doubled
        assert weights.sum() == pytest.approx(9.0)

    def test_seed_reproducible(self, cherry_matrix):
        a = ParsimonyRatchet(cherry_matrix, RatchetConfig(seed=11)).perturbed_weights()
        b = ParsimonyRatchet(cherry_matrix, RatchetConfig(seed=11)).perturbed_weights()
        np.testing.assert_array_equal(a, b)


class TestParsimonyRatchet:
    """Test the full ratchet search."""

    def test_finds_optimum_from_bad_start(self, wrong_tree, cherry_tree, cherry_matrix):
        cfg = RatchetConfig(
            seed=1, max_iterations=20, min_iterations=2, patience=3, rearrangement="spr"
        )
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=wrong_tree)
        assert result.method == "parsimony"
        assert result.score == 6
        assert result.tree.same_topology(cherry_tree)
        assert result.tree.score.value == 6
        assert all(n.branch_length == 0 for n in result.tree.nodes)

    def test_default_start_tree(self, cherry_tree, cherry_matrix):
        cfg = RatchetConfig(
            seed=2, max_iterations=5, min_iterations=1, patience=2, rearrangement="spr"
        )
        result = ParsimonyRatchet(cherry_matrix, cfg).run()
        assert result.score == 6
        assert parsimony_score(result.tree, cherry_matrix) == 6

    def test_history_never_increases(self, wrong_tree, cherry_matrix):
        cfg = RatchetConfig(seed=3, max_iterations=10, min_iterations=3, patience=3)
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=wrong_tree)
        assert len(result.history) == result.iterations + 1
        assert all(b <= a for a, b in zip(result.history, result.history[1:]))
        assert result.history[-1] == result.score

    def test_patience_stops_search(self, cherry_tree, cherry_matrix):
        cfg = RatchetConfig(seed=4, max_iterations=50, min_iterations=0, patience=2)
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=cherry_tree)
        assert result.iterations == 2
        assert result.converged

    def test_max_iterations_cap(self, cherry_tree, cherry_matrix):
        cfg = RatchetConfig(seed=4, max_iterations=3, min_iterations=3, patience=10)
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=cherry_tree)
        assert result.iterations == 3
        assert not result.converged

    def test_time_limit(self, cherry_tree, cherry_matrix):
        cfg = RatchetConfig(seed=4, time_limit=1e-9)
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=cherry_tree)
        assert result.iterations == 0
        assert not result.converged
        assert result.score == 6

    def test_equal_trees_share_best_score(self):
        # no informative characters: every topology has the same length
        m = CharacterMatrix(
            {"A": "1000", "B": "0100", "C": "0010", "D": "0001", "E": "0000"}
        )
        cfg = RatchetConfig(seed=9, max_iterations=15, min_iterations=15, patience=1)
        result = ParsimonyRatchet(m, cfg).run()
        assert result.score == 4
        assert result.equal_trees
        keys = {t.topology_key() for t in result.equal_trees}
        assert len(keys) == len(result.equal_trees)
        for tree in result.equal_trees:
            assert parsimony_score(tree, m) == 4

    def test_threads_give_same_result(self, wrong_tree, cherry_matrix):
        base = dict(seed=6, max_iterations=4, min_iterations=4, rearrangement="spr")
        serial = ParsimonyRatchet(cherry_matrix, RatchetConfig(**base)).run(wrong_tree)
        threaded = ParsimonyRatchet(
            cherry_matrix, RatchetConfig(n_jobs=3, **base)
        ).run(wrong_tree)
        assert serial.history == threaded.history
        assert serial.tree.same_topology(threaded.tree)

    def test_star_start_tree_resolved(self, cherry_tree, cherry_matrix):
        star = Tree.from_newick("(A,B,C,D,E,F);")
        cfg = RatchetConfig(seed=0, max_iterations=5, min_iterations=1, patience=2)
        result = ParsimonyRatchet(cherry_matrix, cfg).run(start_tree=star)
        assert result.score == 6
        assert result.tree.is_binary()
        assert result.tree.same_topology(cherry_tree)

    def test_three_taxa(self, small_matrix):
        result = ParsimonyRatchet(small_matrix, RatchetConfig(seed=1)).run()
        assert result.score == 4
        assert result.iterations == 0
        assert result.converged

    def test_start_tree_taxa_mismatch(self, five_taxon_tree, cherry_matrix):
        with pytest.raises(ValidationError):
            ParsimonyRatchet(cherry_matrix).run(start_tree=five_taxon_tree)
