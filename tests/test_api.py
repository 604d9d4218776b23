"""
Tests for the high-level API (nj_tree, parsimony_ratchet, optimize_likelihood).
"""

import json

import numpy as np
import pytest
from pydantic import ValidationError as ConfigValidationError

from binphylo import (
    CharacterMatrix,
    DistanceMatrix,
    InferenceResult,
    RatchetConfig,
    SubstitutionModel,
    Tree,
    ValidationError,
    distance_matrix,
    log_likelihood,
    nj_tree,
    optimize_likelihood,
    parsimony_ratchet,
    score_tree,
)

CHERRY_NEWICK = "((A:0.1,B:0.1):0.3,(C:0.1,D:0.1):0.3,(E:0.1,F:0.1):0.3);"

CHERRY_DATA = {
    "A": "100111",
    "B": "100101",
    "C": "010100",
    "D": "010100",
    "E": "001000",
    "F": "001000",
}


class TestDistanceAndNJ:
    """Test distance_matrix() and nj_tree()."""

    def test_distance_from_mapping(self):
        """Mappings are converted to a CharacterMatrix."""
        d = distance_matrix({"A": "10100", "B": "11110", "C": "100?1"})
        assert d["A", "B"] == pytest.approx(0.4)

    def test_nj_from_file(self, cherry_matrix_file, cherry_tree):
        """NJ on the cherry matrix recovers the three cherries."""
        result = nj_tree(cherry_matrix_file)
        assert isinstance(result, InferenceResult)
        assert result.method == "nj"
        assert result.score is None
        assert result.tree.same_topology(cherry_tree)

    def test_nj_from_distances(self):
        """A DistanceMatrix is used as given."""
        values = np.ones((4, 4)) - np.eye(4)
        result = nj_tree(DistanceMatrix(["A", "B", "C", "D"], values))
        assert result.tree.bipartitions() == {frozenset("CD")}

    def test_missing_file(self, tmp_path):
        """Nonexistent matrix paths raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            nj_tree(tmp_path / "absent.phy")


class TestParsimonyRatchet:
    """Test parsimony_ratchet()."""

    def test_with_overrides(self, cherry_matrix, cherry_tree):
        """Keyword overrides configure the search."""
        result = parsimony_ratchet(
            cherry_matrix, max_iterations=5, min_iterations=1, patience=2, seed=1,
            rearrangement="spr",
        )
        assert result.score == 6
        assert result.tree.same_topology(cherry_tree)
        assert result.iterations <= 5

    def test_newick_start_tree(self, cherry_matrix):
        """Start trees may be Newick strings."""
        start = "((A,C),(B,D),(E,F));"
        result = parsimony_ratchet(
            cherry_matrix, start_tree=start, max_iterations=3, min_iterations=0,
            patience=1, seed=2, rearrangement="spr",
        )
        assert result.score == 6

    def test_config_and_override(self, cherry_matrix):
        """Overrides take precedence over a config object."""
        cfg = RatchetConfig(max_iterations=50, seed=3)
        result = parsimony_ratchet(cherry_matrix, config=cfg, max_iterations=2, min_iterations=2)
        assert result.iterations <= 2

    def test_acctran_lengths(self, cherry_matrix):
        """ACCTRAN lengths sum to the parsimony length."""
        result = parsimony_ratchet(
            cherry_matrix, start_tree=CHERRY_NEWICK, max_iterations=2, min_iterations=0,
            patience=1, seed=4, acctran_lengths=True,
        )
        assert result.tree.total_length == pytest.approx(result.score)
        for tree in result.equal_trees:
            assert tree.total_length == pytest.approx(result.score)

    def test_invalid_override(self, cherry_matrix):
        """Invalid settings are rejected before the search starts."""
        with pytest.raises(ConfigValidationError):
            parsimony_ratchet(cherry_matrix, rearrangement="tbr")


class TestOptimizeLikelihood:
    """Test optimize_likelihood()."""

    def test_fixed_topology(self, cherry_matrix, cherry_tree):
        """With topology search off only lengths and model change."""
        result = optimize_likelihood(
            cherry_matrix, tree=CHERRY_NEWICK, optimize_topology=False
        )
        assert result.method == "likelihood"
        assert result.tree.same_topology(cherry_tree)
        assert result.score >= log_likelihood(cherry_tree, cherry_matrix)
        assert isinstance(result.model, SubstitutionModel)

    def test_default_start_tree(self, cherry_matrix):
        """Without a start tree the search begins from Neighbor Joining."""
        model = SubstitutionModel(n_categories=2)
        result = optimize_likelihood(CHERRY_DATA, model=model, max_cycles=3)
        assert result.iterations <= 3
        assert np.isfinite(result.score)
        assert result.model.n_categories == 2

    def test_tree_file(self, cherry_matrix_file, cherry_tree_file):
        """Matrix and tree may both be given as paths."""
        result = optimize_likelihood(cherry_matrix_file, tree=cherry_tree_file, max_cycles=1)
        assert result.tree.taxa == frozenset(CHERRY_DATA)


class TestScoreTree:
    """Test score_tree()."""

    def test_parsimony(self, cherry_matrix, wrong_tree):
        """Parsimony scores are attached to a copy of the tree."""
        scored = score_tree(cherry_matrix, wrong_tree)
        assert scored.score.method == "parsimony"
        assert scored.score.value == 9
        assert wrong_tree.score is None

    def test_likelihood(self, cherry_matrix, cherry_tree):
        """Likelihood scores match log_likelihood()."""
        model = SubstitutionModel(n_categories=4, gamma_shape=0.5)
        scored = score_tree(cherry_matrix, cherry_tree, method="likelihood", model=model)
        expected = log_likelihood(cherry_tree, cherry_matrix, model)
        assert scored.score.value == pytest.approx(expected)
        assert scored.score.params["n_categories"] == 4

    def test_unknown_method(self, cherry_matrix, cherry_tree):
        """Unknown criteria raise ValidationError."""
        with pytest.raises(ValidationError):
            score_tree(cherry_matrix, cherry_tree, method="distance")


class TestInferenceResult:
    """Test result export."""

    def test_summary_and_json(self, cherry_matrix, cherry_tree, tmp_path):
        """Summaries and JSON carry the score and tree."""
        result = optimize_likelihood(
            cherry_matrix, tree=cherry_tree, model=SubstitutionModel(n_categories=4),
            max_cycles=2,
        )
        summary = result.summary()
        assert "Maximum Likelihood" in summary
        assert "Log-likelihood" in summary
        assert "Gamma shape" in summary

        path = tmp_path / "result.json"
        text = result.to_json(str(path))
        data = json.loads(path.read_text())
        assert data == json.loads(text)
        assert data["method"] == "likelihood"
        assert data["score"] == pytest.approx(result.score)
        assert Tree.from_newick(data["tree"]).same_topology(result.tree)
        assert data["model"]["n_categories"] == 4

    def test_parsimony_summary(self, cherry_matrix):
        """Parsimony summaries report the length."""
        result = parsimony_ratchet(
            cherry_matrix, start_tree=CHERRY_NEWICK, max_iterations=1, min_iterations=0,
            patience=1, seed=5,
        )
        summary = result.summary()
        assert "Parsimony length: 6" in summary
        assert result.to_dict()["equal_trees"]

    def test_matrix_from_mapping_equals_file(self, cherry_matrix_file):
        """Files and mappings give the same matrix."""
        assert CharacterMatrix.from_phylip(cherry_matrix_file) == CharacterMatrix(CHERRY_DATA)
