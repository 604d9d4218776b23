"""Tree inference command implementations (nj, parsimony, ml)."""

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as ConfigError

from ...api import nj_tree, optimize_likelihood, parsimony_ratchet
from ...config import LikelihoodConfig, RatchetConfig
from ...exceptions import BinPhyloError
from ...results import InferenceResult
from ..utils import build_model, fail, load_matrix, load_tree, write_output

logger = logging.getLogger(__name__)


def _format(result: InferenceResult, format: str) -> str:
    if format == "json":
        return result.to_json()
    if format == "newick":
        return result.newick
    return result.summary()


def run_nj(matrix: Path, output: Optional[Path], format: str):
    """Build a Neighbor Joining tree."""
    data = load_matrix(matrix)
    try:
        result = nj_tree(data)
    except BinPhyloError as e:
        fail("Neighbor Joining failed", e)
    write_output(_format(result, format), output)


def run_parsimony(
    matrix: Path,
    tree: Optional[Path],
    output: Optional[Path],
    format: str,
    acctran_lengths: bool,
    **settings,
):
    """Run the Parsimony Ratchet."""
    data = load_matrix(matrix)
    start_tree = load_tree(tree) if tree else None
    try:
        config = RatchetConfig(**settings)
    except ConfigError as e:
        fail("Invalid ratchet settings", e)

    logger.info("Parsimony Ratchet on %d taxa x %d characters", data.n_taxa, data.n_sites)
    try:
        result = parsimony_ratchet(
            data, start_tree=start_tree, config=config, acctran_lengths=acctran_lengths
        )
    except BinPhyloError as e:
        fail("Parsimony search failed", e)
    write_output(_format(result, format), output)


def run_ml(
    matrix: Path,
    tree: Optional[Path],
    output: Optional[Path],
    format: str,
    gamma_categories: int,
    alpha: float,
    ascertainment: bool,
    **settings,
):
    """Run joint maximum likelihood optimization."""
    data = load_matrix(matrix)
    start_tree = load_tree(tree) if tree else None
    model = build_model(data.n_states, gamma_categories, alpha, ascertainment)
    try:
        config = LikelihoodConfig(**settings)
    except ConfigError as e:
        fail("Invalid optimizer settings", e)

    logger.info("Maximum likelihood under %s", model.describe())
    try:
        result = optimize_likelihood(data, tree=start_tree, model=model, config=config)
    except BinPhyloError as e:
        fail("Likelihood optimization failed", e)
    write_output(_format(result, format), output)
