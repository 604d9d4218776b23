"""Distance and fixed-tree scoring command implementations."""

import json
from pathlib import Path
from typing import Optional

import numpy as np

from ...api import score_tree
from ...core.distance import hamming_distances
from ...core.likelihood import LikelihoodCalculator
from ...core.parsimony import site_scores
from ...exceptions import BinPhyloError
from ..utils import build_model, fail, load_matrix, load_tree, write_output


def run_distance(matrix: Path, output: Optional[Path], format: str):
    """Compute pairwise Hamming distances."""
    data = load_matrix(matrix)
    try:
        distances = hamming_distances(data)
    except BinPhyloError as e:
        fail("Distance calculation failed", e)

    if format == "json":
        text = json.dumps(distances.to_dict(), indent=2)
    else:
        width = max(len(t) for t in distances.taxa) + 2
        lines = [f"{distances.n_taxa}"]
        for name, row in zip(distances.taxa, distances.values):
            lines.append(name.ljust(width) + " ".join(f"{d:.6f}" for d in row))
        text = "\n".join(lines)
    write_output(text, output)


def run_score(
    matrix: Path,
    tree: Path,
    method: str,
    output: Optional[Path],
    format: str,
    per_site: bool,
    gamma_categories: int,
    alpha: float,
    ascertainment: bool,
):
    """Score a fixed tree by parsimony or likelihood."""
    data = load_matrix(matrix)
    tree_obj = load_tree(tree)
    model = None
    if method == "likelihood":
        model = build_model(data.n_states, gamma_categories, alpha, ascertainment)

    try:
        scored = score_tree(data, tree_obj, method=method, model=model)
        if per_site and method == "parsimony":
            per_site_values = site_scores(tree_obj, data)
        elif per_site:
            per_site_values = LikelihoodCalculator(data).site_log_likelihoods(tree_obj, model)
        else:
            per_site_values = None
    except BinPhyloError as e:
        fail("Scoring failed", e)

    if format == "json":
        record = {
            "method": method,
            "score": scored.score.value,
            "model": model.to_dict() if model is not None else None,
        }
        if per_site_values is not None:
            record["sites"] = [float(v) for v in per_site_values]
        text = json.dumps(record, indent=2)
    else:
        label = "Parsimony length" if method == "parsimony" else "Log-likelihood"
        lines = [f"{label}: {scored.score.value:.6f}"]
        if model is not None:
            lines.append(f"Model: {model.describe()}")
        if per_site_values is not None:
            lines.append("")
            lines.append("site\tscore")
            for i, value in enumerate(np.asarray(per_site_values)):
                lines.append(f"{i + 1}\t{value:.6f}")
        text = "\n".join(lines)
    write_output(text, output)
