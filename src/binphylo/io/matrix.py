"""
Discrete character matrices.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

import numpy as np

from ..exceptions import UnknownTaxonError, ValidationError

logger = logging.getLogger(__name__)

# Encoded value of the missing symbol in the state array
MISSING_CODE = -1

BINARY_ALPHABET = ("0", "1")


@dataclass(frozen=True)
class SitePatterns:
    """
    Unique site columns of a character matrix.

    Attributes
    ----------
    patterns : ndarray, shape (n_taxa, n_patterns)
        Encoded state of every taxon at every unique column
    weights : ndarray, shape (n_patterns,)
        Number of sites showing each pattern
    site_index : ndarray, shape (n_sites,)
        Pattern index of every original site
    """

    patterns: np.ndarray
    weights: np.ndarray
    site_index: np.ndarray

    @property
    def n_patterns(self) -> int:
        return self.patterns.shape[1]

    def reweight(self, site_weights: np.ndarray) -> np.ndarray:
        """Collapse per-site weights onto patterns."""
        return np.bincount(
            self.site_index, weights=site_weights, minlength=self.n_patterns
        )


class CharacterMatrix:
    """
    Taxa x discrete characters, read-only once built.

    Parameters
    ----------
    data : Mapping[str, Sequence]
        Taxon name to state sequence. Sequences may be strings ("10?1")
        or sequences of symbols; every symbol is compared by its string form.
    alphabet : Sequence[str]
        Allowed states, in state-index order
    missing : str
        Symbol for unobserved states

    Raises
    ------
    ValidationError
        If sequences differ in length or contain symbols outside the
        alphabet and the missing symbol.

    Examples
    --------
    >>> m = CharacterMatrix({"A": "10100", "B": "11110", "C": "100?1"})
    >>> m.n_taxa, m.n_sites
    (3, 5)
    >>> m.sequence("C")
    '100?1'
    """

    def __init__(
        self,
        data: Mapping[str, Sequence],
        alphabet: Sequence[str] = BINARY_ALPHABET,
        missing: str = "?",
    ):
        alphabet = tuple(str(s) for s in alphabet)
        missing = str(missing)
        if len(alphabet) < 2:
            raise ValidationError(f"Alphabet needs at least two states, got {alphabet}")
        if len(set(alphabet)) != len(alphabet):
            raise ValidationError(f"Alphabet contains duplicate states: {alphabet}")
        if missing in alphabet:
            raise ValidationError(f"Missing symbol '{missing}' is also a state")
        if len(data) == 0:
            raise ValidationError("Character matrix has no taxa")

        symbol_to_code = {symbol: i for i, symbol in enumerate(alphabet)}
        symbol_to_code[missing] = MISSING_CODE

        taxa = [str(name) for name in data]
        duplicates = sorted({name for name in taxa if taxa.count(name) > 1})
        if duplicates:
            raise ValidationError(
                f"Duplicate taxon names {duplicates}", taxon=duplicates[0]
            )
        n_sites = None
        rows = []
        for name, raw in zip(taxa, data.values()):
            symbols = [str(s) for s in raw]
            if n_sites is None:
                n_sites = len(symbols)
            elif len(symbols) != n_sites:
                raise ValidationError(
                    f"Taxon '{name}' has {len(symbols)} states, expected {n_sites}",
                    taxon=name,
                )
            row = np.empty(len(symbols), dtype=np.int8)
            for site, symbol in enumerate(symbols):
                try:
                    row[site] = symbol_to_code[symbol]
                except KeyError:
                    raise ValidationError(
                        f"Taxon '{name}' has state '{symbol}' at site {site}, "
                        f"outside alphabet {alphabet} and missing symbol '{missing}'",
                        taxon=name,
                        site=site,
                    ) from None
            rows.append(row)

        if n_sites == 0:
            raise ValidationError("Character matrix has no sites")

        states = np.vstack(rows)
        states.setflags(write=False)

        self._taxa = tuple(taxa)
        self._index = {name: i for i, name in enumerate(self._taxa)}
        self._states = states
        self.alphabet = alphabet
        self.missing = missing
        self._patterns: Optional[SitePatterns] = None

    @classmethod
    def _from_codes(
        cls, taxa: Sequence[str], states: np.ndarray, alphabet: tuple, missing: str
    ) -> "CharacterMatrix":
        """Build from an already validated code array without re-encoding."""
        obj = cls.__new__(cls)
        states = np.array(states, dtype=np.int8)
        states.setflags(write=False)
        obj._taxa = tuple(taxa)
        obj._index = {name: i for i, name in enumerate(obj._taxa)}
        obj._states = states
        obj.alphabet = alphabet
        obj.missing = missing
        obj._patterns = None
        return obj

    @classmethod
    def from_phylip(
        cls,
        filepath: Path | str,
        alphabet: Sequence[str] = BINARY_ALPHABET,
        missing: str = "?",
    ) -> "CharacterMatrix":
        """
        Read a sequential PHYLIP-style character matrix.

        The first line holds the number of taxa and characters. Each
        following record is a taxon name, whitespace, then its states
        (which may continue over several lines).

        Parameters
        ----------
        filepath : Path or str
            Path to the matrix file

        Returns
        -------
        CharacterMatrix
        """
        filepath = Path(filepath)
        with open(filepath, "r") as f:
            lines = [line.strip() for line in f if line.strip()]

        if not lines:
            raise ValidationError(f"{filepath} is empty")

        header = lines[0].split()
        try:
            n_taxa, n_chars = int(header[0]), int(header[1])
        except (IndexError, ValueError):
            raise ValidationError(
                f"{filepath}: first line must be '<n_taxa> <n_characters>', got '{lines[0]}'"
            ) from None

        records: list[tuple[str, str]] = []
        i = 1
        while i < len(lines) and len(records) < n_taxa:
            parts = lines[i].split(None, 1)
            i += 1
            name = parts[0]
            seq = re.sub(r"\s", "", parts[1]) if len(parts) > 1 else ""
            # States may wrap onto continuation lines
            while len(seq) < n_chars and i < len(lines):
                seq += re.sub(r"\s", "", lines[i])
                i += 1
            records.append((name, seq))

        if len(records) != n_taxa:
            raise ValidationError(
                f"{filepath}: expected {n_taxa} taxa, found {len(records)}"
            )

        names = [name for name, _ in records]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValidationError(
                f"{filepath}: duplicate taxon names {sorted(duplicates)}",
                taxon=sorted(duplicates)[0],
            )

        for name, seq in records:
            if len(seq) != n_chars:
                raise ValidationError(
                    f"Taxon '{name}' has {len(seq)} states, expected {n_chars}",
                    taxon=name,
                )

        logger.debug("Read %d taxa x %d characters from %s", n_taxa, n_chars, filepath)
        return cls(dict(records), alphabet=alphabet, missing=missing)

    def to_phylip(self, filepath: Path | str) -> None:
        """Write the matrix in the sequential format read by from_phylip."""
        width = max(len(name) for name in self._taxa) + 2
        with open(filepath, "w") as f:
            f.write(f"{self.n_taxa} {self.n_sites}\n")
            for name in self._taxa:
                f.write(f"{name.ljust(width)}{self.sequence(name)}\n")

    @property
    def taxa(self) -> tuple[str, ...]:
        """Taxon names in row order."""
        return self._taxa

    @property
    def states(self) -> np.ndarray:
        """Read-only encoded states, shape (n_taxa, n_sites); missing is -1."""
        return self._states

    @property
    def n_taxa(self) -> int:
        return len(self._taxa)

    @property
    def n_sites(self) -> int:
        return self._states.shape[1]

    @property
    def n_states(self) -> int:
        return len(self.alphabet)

    def __contains__(self, taxon: str) -> bool:
        return taxon in self._index

    def __len__(self) -> int:
        return self.n_taxa

    def index(self, taxon: str) -> int:
        """Row index of a taxon."""
        try:
            return self._index[taxon]
        except KeyError:
            raise UnknownTaxonError([taxon], where="character matrix") from None

    def states_of(self, taxon: str) -> np.ndarray:
        """Encoded state row of one taxon."""
        return self._states[self.index(taxon)]

    def sequence(self, taxon: str) -> str:
        """State symbols of one taxon joined into a string."""
        symbols = self.alphabet + (self.missing,)
        return "".join(symbols[code] for code in self.states_of(taxon))

    def subset(self, taxa: Iterable[str]) -> "CharacterMatrix":
        """
        Restrict the matrix to the given taxa, keeping their order here.

        Raises
        ------
        UnknownTaxonError
            If any requested taxon is not in the matrix
        """
        wanted = list(dict.fromkeys(taxa))
        unknown = [t for t in wanted if t not in self._index]
        if unknown:
            raise UnknownTaxonError(unknown, where="character matrix")
        if not wanted:
            raise ValidationError("Cannot restrict a character matrix to zero taxa")
        rows = [self._index[t] for t in wanted]
        return CharacterMatrix._from_codes(
            wanted, self._states[rows], self.alphabet, self.missing
        )

    def patterns(self) -> SitePatterns:
        """
        Compress identical site columns.

        Returns
        -------
        SitePatterns
            Unique columns with multiplicities, cached on first call
        """
        if self._patterns is None:
            unique, site_index, counts = np.unique(
                self._states.T, axis=0, return_inverse=True, return_counts=True
            )
            patterns = np.ascontiguousarray(unique.T)
            patterns.setflags(write=False)
            self._patterns = SitePatterns(
                patterns=patterns,
                weights=counts.astype(float),
                site_index=np.asarray(site_index).ravel(),
            )
        return self._patterns

    def constant_sites(self) -> np.ndarray:
        """Indices of fully observed sites where every taxon has the same state."""
        observed = np.all(self._states != MISSING_CODE, axis=0)
        same = np.all(self._states == self._states[0], axis=0)
        return np.flatnonzero(observed & same)

    def __eq__(self, other) -> bool:
        if not isinstance(other, CharacterMatrix):
            return NotImplemented
        return (
            self._taxa == other._taxa
            and self.alphabet == other.alphabet
            and self.missing == other.missing
            and np.array_equal(self._states, other._states)
        )

    def __hash__(self):
        return hash((self._taxa, self.alphabet, self._states.tobytes()))

    def __repr__(self) -> str:
        return (
            f"CharacterMatrix(n_taxa={self.n_taxa}, n_sites={self.n_sites}, "
            f"alphabet={self.alphabet})"
        )
