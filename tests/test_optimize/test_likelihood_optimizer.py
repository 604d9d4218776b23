"""
Tests for joint maximum-likelihood optimization.
"""

import numpy as np
import pytest

from binphylo.config import LikelihoodConfig
from binphylo.core.likelihood import LikelihoodCalculator
from binphylo.exceptions import ValidationError
from binphylo.io.matrix import CharacterMatrix
from binphylo.io.trees import Tree
from binphylo.models.binary import SubstitutionModel
from binphylo.optimize.likelihood import LikelihoodOptimizer
from binphylo.simulate.binary import simulate_characters

# One interchange away from the cherry tree
NEAR_CHERRY = "(((C:0.1,D:0.1):0.3,A:0.1):0.3,B:0.1,(E:0.1,F:0.1):0.3);"


@pytest.fixture
def simulated_matrix(cherry_tree):
    """Characters simulated on the cherry tree."""
    return simulate_characters(cherry_tree, n_sites=1000, seed=7)


class TestBranchLengths:
    """Test per-edge optimization."""

    def test_two_taxa_analytic(self):
        # 2 of 8 sites differ: P_diff(t) = 1/4 gives t = ln(2) / 2
        tree = Tree.from_newick("(A:0.5,B:0.5);")
        m = CharacterMatrix({"A": "00000000", "B": "00000011"})
        result = LikelihoodOptimizer(m, tree).optimize()
        assert result.tree.path_length("A", "B") == pytest.approx(np.log(2) / 2, abs=1e-3)
        assert result.converged

    def test_edge_optimization_never_decreases(self, cherry_tree, simulated_matrix):
        opt = LikelihoodOptimizer(simulated_matrix, cherry_tree)
        tree = opt.tree
        model = opt.model
        lnl = opt.log_likelihood()
        for node in tree.nodes:
            if node.parent is None:
                continue
            new = opt.optimize_edge(tree, node.id, model, lnl)
            assert new >= lnl
            assert new == pytest.approx(opt.log_likelihood(tree, model))
            lnl = new

    def test_lengths_clamped(self, cherry_matrix):
        tree = Tree.from_newick("((A:0,B:0):0,(C:0,D:0):0,(E:0,F:0):50);")
        config = LikelihoodConfig(max_branch_length=5.0)
        opt = LikelihoodOptimizer(cherry_matrix, tree, config=config)
        lengths = [n.branch_length for n in opt.tree.nodes if n.parent is not None]
        assert min(lengths) == config.min_branch_length
        assert max(lengths) == 5.0


class TestJointOptimization:
    """Test full optimization cycles."""

    def test_history_monotone(self, cherry_tree, simulated_matrix):
        result = LikelihoodOptimizer(simulated_matrix, cherry_tree).optimize()
        history = result.history
        assert all(b >= a - 1e-9 for a, b in zip(history, history[1:]))
        assert result.score == pytest.approx(history[-1])
        assert len(history) == result.iterations + 1
        assert result.method == "likelihood"
        assert result.tree.score.method == "likelihood"
        assert result.tree.score.value == pytest.approx(result.score)

    def test_score_matches_returned_tree(self, cherry_tree, simulated_matrix):
        result = LikelihoodOptimizer(simulated_matrix, cherry_tree).optimize()
        calc = LikelihoodCalculator(simulated_matrix)
        assert calc.compute_log_likelihood(result.tree, result.model) == pytest.approx(
            result.score
        )

    def test_recovers_topology(self, cherry_tree, simulated_matrix):
        start = Tree.from_newick(NEAR_CHERRY)
        assert not start.same_topology(cherry_tree)
        result = LikelihoodOptimizer(simulated_matrix, start).optimize()
        assert result.tree.same_topology(cherry_tree)

    def test_fixed_topology(self, simulated_matrix):
        start = Tree.from_newick(NEAR_CHERRY)
        config = LikelihoodConfig(optimize_topology=False)
        result = LikelihoodOptimizer(simulated_matrix, start, config=config).optimize()
        assert result.tree.same_topology(start)

    def test_gamma_shape_estimated(self, cherry_tree, simulated_matrix):
        model = SubstitutionModel(n_categories=4, gamma_shape=0.3)
        result = LikelihoodOptimizer(simulated_matrix, cherry_tree, model).optimize()
        assert result.model.n_categories == 4
        assert result.model.gamma_shape != 0.3
        assert 0.01 - 1e-9 <= result.model.gamma_shape <= 100.0 + 1e-9

    def test_frequencies_estimated(self, cherry_tree):
        truth = SubstitutionModel(frequencies=(0.2, 0.8))
        m = simulate_characters(cherry_tree, truth, n_sites=2000, seed=3)
        config = LikelihoodConfig(optimize_frequencies=True, optimize_topology=False)
        result = LikelihoodOptimizer(m, cherry_tree, config=config).optimize()
        assert result.model.frequencies[1] > 0.6
        assert sum(result.model.frequencies) == pytest.approx(1.0)

    def test_ascertainment(self, cherry_tree):
        model = SubstitutionModel(ascertainment=True)
        m = simulate_characters(cherry_tree, model, n_sites=300, seed=5)
        result = LikelihoodOptimizer(m, cherry_tree, model).optimize()
        assert np.isfinite(result.score)
        assert result.model.ascertainment

    def test_multifurcating_start_resolved(self, simulated_matrix):
        start = Tree.from_newick("((A:0.1,B:0.1,C:0.1,D:0.1):0.3,E:0.1,F:0.1);")
        config = LikelihoodConfig(max_cycles=1)
        opt = LikelihoodOptimizer(simulated_matrix, start, config=config)
        assert opt.tree.is_binary()
        assert all(
            n.branch_length >= opt.config.min_branch_length
            for n in opt.tree.nodes if n.parent is not None
        )
        result = opt.optimize()
        assert result.tree.is_binary()
        assert np.isfinite(result.score)

    def test_rooted_start_is_unrooted(self, cherry_tree, simulated_matrix):
        rooted = cherry_tree.reroot("A", resolve_root=True)
        config = LikelihoodConfig(max_cycles=1)
        result = LikelihoodOptimizer(simulated_matrix, rooted, config=config).optimize()
        assert not result.tree.rooted
        assert result.iterations == 1

    def test_time_limit(self, cherry_tree, simulated_matrix):
        config = LikelihoodConfig(time_limit=1e-9)
        opt = LikelihoodOptimizer(simulated_matrix, cherry_tree, config=config)
        initial = opt.log_likelihood()
        result = opt.optimize()
        assert result.iterations == 0
        assert not result.converged
        assert result.score == pytest.approx(initial)

    def test_taxa_mismatch(self, five_taxon_tree, cherry_matrix):
        with pytest.raises(ValidationError):
            LikelihoodOptimizer(cherry_matrix, five_taxon_tree)
