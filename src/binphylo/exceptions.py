"""
Exceptions raised by binphylo.

Every error carries enough context (taxon, pair, site index) to act on,
plus an optional suggestion appended to the rendered message.
"""

from typing import Iterable, Optional


class BinPhyloError(Exception):
    """Base exception for binphylo errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message

    def __str__(self) -> str:
        return self.full_message


class ValidationError(BinPhyloError, ValueError):
    """Raised for malformed or inconsistent character data or trees."""

    def __init__(
        self,
        message: str,
        taxon: Optional[str] = None,
        site: Optional[int] = None,
        suggestion: Optional[str] = None,
    ):
        self.taxon = taxon
        self.site = site
        super().__init__(message, suggestion=suggestion)


class InsufficientOverlapError(BinPhyloError):
    """Raised when two taxa share no site where both are observed."""

    def __init__(self, taxon_a: str, taxon_b: str):
        self.pair = (taxon_a, taxon_b)
        super().__init__(
            message=(
                f"Taxa '{taxon_a}' and '{taxon_b}' have no comparable sites "
                "(every site is missing in at least one of them)"
            ),
            suggestion=(
                "Drop one of the two taxa with CharacterMatrix.subset() or "
                "collect data for sites shared by both."
            ),
        )


class UnknownTaxonError(BinPhyloError, KeyError):
    """Raised when an operation names a taxon absent from the tree or matrix."""

    def __init__(self, taxa: Iterable[str], where: str = "tree"):
        self.taxa = tuple(sorted(taxa))
        names = ", ".join(f"'{t}'" for t in self.taxa)
        super().__init__(message=f"Unknown taxon in {where}: {names}")


class DegenerateInputError(BinPhyloError, ValueError):
    """Raised when an input is too small for the requested algorithm."""

    def __init__(self, message: str, n_taxa: Optional[int] = None):
        self.n_taxa = n_taxa
        super().__init__(message)


class NewickParseError(BinPhyloError, ValueError):
    """Raised for malformed Newick text."""

    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
