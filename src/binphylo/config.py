"""
Pydantic configuration models for the tree search engines.

These models hold the tunable settings of the Parsimony Ratchet and of the
joint maximum-likelihood optimizer. API functions accept a config object
and/or keyword overrides of its fields.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RatchetConfig(BaseModel):
    """
    Configuration for the Parsimony Ratchet.

    Perturbation schemes:
        - bootstrap: every site weight is redrawn as a multinomial count
          over n_sites draws (mean 1 per site)
        - upweight: a random ``upweight_fraction`` of sites gets weight
          ``upweight_factor``, the rest keep weight 1

    Neither scheme has a single canonical setting; the defaults follow the
    common bootstrap-resampling variant of the ratchet.
    """

    max_iterations: int = Field(
        default=100,
        ge=1,
        description="Hard cap on ratchet iterations.",
    )
    min_iterations: int = Field(
        default=10,
        ge=0,
        description="Iterations always run before the patience rule may stop the search.",
    )
    patience: int = Field(
        default=10,
        ge=1,
        description="Stop after this many consecutive iterations without a better score.",
    )
    rearrangement: Literal["nni", "spr"] = Field(
        default="nni",
        description="Local search move type: nearest-neighbor interchange or subtree prune-regraft.",
    )
    spr_radius: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of edges between prune and regraft points (None = unlimited).",
    )
    perturbation: Literal["bootstrap", "upweight"] = Field(
        default="bootstrap",
        description="Site reweighting scheme used in the perturbed search phase.",
    )
    upweight_fraction: float = Field(
        default=0.25,
        gt=0.0,
        le=1.0,
        description="Fraction of sites upweighted under the 'upweight' scheme.",
    )
    upweight_factor: float = Field(
        default=2.0,
        gt=1.0,
        description="Weight given to upweighted sites.",
    )
    max_equal_trees: int = Field(
        default=100,
        ge=1,
        description="Maximum number of equally parsimonious topologies retained.",
    )
    time_limit: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Wall-clock budget in seconds, checked between iterations.",
    )
    seed: Optional[int] = Field(
        default=None,
        description="Random seed for reproducible perturbations.",
    )
    n_jobs: int = Field(
        default=1,
        ge=1,
        description="Worker threads used to score candidate moves.",
    )

    @model_validator(mode="after")
    def validate_iterations(self) -> "RatchetConfig":
        if self.min_iterations > self.max_iterations:
            msg = (
                f"min_iterations ({self.min_iterations}) cannot exceed "
                f"max_iterations ({self.max_iterations})"
            )
            raise ValueError(msg)
        return self

    model_config = {"frozen": True, "extra": "forbid"}


class LikelihoodConfig(BaseModel):
    """Configuration for joint topology, branch-length and model optimization."""

    optimize_edges: bool = Field(
        default=True,
        description="Optimize every branch length.",
    )
    optimize_topology: bool = Field(
        default=True,
        description="Search NNI rearrangements for higher likelihood.",
    )
    optimize_frequencies: bool = Field(
        default=False,
        description="Estimate equilibrium state frequencies instead of fixing them.",
    )
    optimize_gamma: bool = Field(
        default=True,
        description="Estimate the gamma shape when the model has several rate categories.",
    )
    tolerance: float = Field(
        default=1e-4,
        gt=0.0,
        description="Stop when a full cycle improves the log-likelihood by less than this.",
    )
    max_cycles: int = Field(
        default=20,
        ge=1,
        description="Maximum number of edge/topology/model cycles.",
    )
    min_branch_length: float = Field(
        default=1e-8,
        gt=0.0,
        description="Lower bound for branch lengths.",
    )
    max_branch_length: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for branch lengths.",
    )
    time_limit: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Wall-clock budget in seconds, checked between cycles.",
    )
    n_jobs: int = Field(
        default=1,
        ge=1,
        description="Worker threads used to score candidate rearrangements.",
    )

    @model_validator(mode="after")
    def validate_branch_bounds(self) -> "LikelihoodConfig":
        if self.min_branch_length >= self.max_branch_length:
            msg = (
                f"min_branch_length ({self.min_branch_length}) must be below "
                f"max_branch_length ({self.max_branch_length})"
            )
            raise ValueError(msg)
        return self

    model_config = {"frozen": True, "extra": "forbid"}


def resolve_config(config_cls, config=None, **overrides):
    """Return ``config`` (or defaults) with keyword overrides applied."""
    base = config if config is not None else config_cls()
    if not overrides:
        return base
    return config_cls(**{**base.model_dump(), **overrides})
