"""
Unit tests for Fitch parsimony and ACCTRAN reconstruction.
"""

import numpy as np
import pytest

from binphylo.core.parsimony import (
    FitchScorer,
    acctran,
    acctran_states,
    parsimony_score,
    site_scores,
)
from binphylo.exceptions import ValidationError
from binphylo.io.matrix import MISSING_CODE, CharacterMatrix
from binphylo.io.trees import Tree


class TestFitchScore:
    """Test parsimony lengths."""

    def test_trichotomy_with_missing(self, small_matrix):
        tree = Tree.from_newick("(A,B,C);")
        assert parsimony_score(tree, small_matrix) == 4

    def test_cherry_tree(self, cherry_tree, cherry_matrix):
        assert parsimony_score(cherry_tree, cherry_matrix) == 6

    def test_wrong_tree(self, wrong_tree, cherry_matrix):
        assert parsimony_score(wrong_tree, cherry_matrix) == 9

    def test_independent_of_root_and_order(self, cherry_tree, cherry_matrix):
        for tree in (
            cherry_tree.reroot("E", resolve_root=True),
            cherry_tree.reroot("C"),
            cherry_tree.ladderize(descending=False),
        ):
            assert parsimony_score(tree, cherry_matrix) == 6

    def test_site_scores(self, cherry_tree, wrong_tree, cherry_matrix):
        np.testing.assert_array_equal(site_scores(cherry_tree, cherry_matrix), np.ones(6))
        np.testing.assert_array_equal(
            site_scores(wrong_tree, cherry_matrix), [2, 2, 1, 1, 1, 2]
        )

    def test_site_weights(self, wrong_tree, cherry_matrix):
        weights = np.array([0, 0, 0, 0, 0, 1.0])
        assert parsimony_score(wrong_tree, cherry_matrix, site_weights=weights) == 2
        with pytest.raises(ValidationError):
            parsimony_score(wrong_tree, cherry_matrix, site_weights=np.ones(3))

    def test_all_missing_taxon_adds_nothing(self, cherry_tree):
        data = {
            "A": "100111",
            "B": "??????",
            "C": "010100",
            "D": "010100",
            "E": "001000",
            "F": "001000",
        }
        m = CharacterMatrix(data)
        assert parsimony_score(cherry_tree, m) <= 6

    def test_polytomy_multistate(self):
        m = CharacterMatrix(
            {"A": "0", "B": "1", "C": "2", "D": "2"}, alphabet=("0", "1", "2")
        )
        assert parsimony_score(Tree.from_newick("(A,B,C,D);"), m) == 2
        assert parsimony_score(Tree.from_newick("((A,B),(C,D));"), m) == 2

    def test_taxa_mismatch(self, five_taxon_tree, cherry_matrix):
        with pytest.raises(ValidationError):
            parsimony_score(five_taxon_tree, cherry_matrix)

    def test_scorer_reuse(self, cherry_tree, wrong_tree, cherry_matrix):
        scorer = FitchScorer(cherry_matrix)
        assert scorer.score(cherry_tree) == 6
        assert scorer.score(wrong_tree) == 9
        doubled = scorer.weights * 2
        assert scorer.score(cherry_tree, doubled) == 12


class TestAcctran:
    """Test accelerated-transformation branch lengths."""

    def test_lengths_sum_to_score(self, cherry_tree, wrong_tree, cherry_matrix):
        for tree, expected in ((cherry_tree, 6), (wrong_tree, 9)):
            result = acctran(tree, cherry_matrix)
            assert result.total_length == pytest.approx(expected)
            assert result.score.method == "parsimony"
            assert result.score.value == expected
            assert result.same_topology(tree)

    def test_lengths_are_change_counts(self, cherry_tree, cherry_matrix):
        result = acctran(cherry_tree, cherry_matrix)
        for node in result.nodes:
            assert node.branch_length == int(node.branch_length)

    def test_path_covers_observed_differences(self, cherry_tree, cherry_matrix):
        result = acctran(cherry_tree, cherry_matrix)
        for a in cherry_matrix.taxa:
            for b in cherry_matrix.taxa:
                differing = np.sum(cherry_matrix.states_of(a) != cherry_matrix.states_of(b))
                assert result.path_length(a, b) >= differing

    def test_input_tree_untouched(self, cherry_tree, cherry_matrix):
        before = cherry_tree.to_newick()
        acctran(cherry_tree, cherry_matrix)
        assert cherry_tree.to_newick() == before

    def test_collapse_zero_edges(self, cherry_matrix):
        tree = Tree.from_newick("(((A,B),(C,D)),E,F);")
        result = acctran(tree, cherry_matrix, collapse=True)
        assert result.total_length == pytest.approx(parsimony_score(tree, cherry_matrix))
        assert all(
            n.branch_length > 0 for n in result.nodes
            if n.parent is not None and not n.is_leaf
        )

    def test_leaf_states_match_data(self, small_matrix):
        tree = Tree.from_newick("(A,B,C);")
        states = acctran_states(tree, small_matrix)
        for taxon in small_matrix.taxa:
            observed = small_matrix.states_of(taxon)
            assigned = states[tree.leaf(taxon).id]
            mask = observed != MISSING_CODE
            np.testing.assert_array_equal(assigned[mask], observed[mask])

    def test_changes_placed_toward_root(self):
        # A single derived state shared by a cherry: ACCTRAN puts the change
        # on the cherry's stem, not on both tips
        m = CharacterMatrix({"A": "1", "B": "1", "C": "0", "D": "0", "E": "0"})
        tree = Tree.from_newick("((A,B),C,(D,E));")
        result = acctran(tree, m)
        assert result.leaf("A").branch_length == 0
        assert result.leaf("A").parent.branch_length == 1

    def test_ambiguous_change_accelerated(self):
        # Two reconstructions of length 2 exist: a gain on the (A,(B,C))
        # stem with a loss on B, or separate gains on A and C. ACCTRAN
        # takes the first.
        m = CharacterMatrix({"A": "1", "B": "0", "C": "1", "D": "0"})
        tree = Tree.from_newick("((A,(B,C)),D);")
        result = acctran(tree, m)
        assert result.leaf("A").parent.branch_length == 1
        assert result.leaf("B").branch_length == 1
        assert result.leaf("B").parent.branch_length == 0
        assert result.leaf("A").branch_length == 0
        assert result.leaf("C").branch_length == 0
        assert result.leaf("D").branch_length == 0
        assert result.total_length == 2
