"""
Principal component analysis for feature-vector compression.

Samples are accumulated first, then a basis of the top-k directions of
maximum variance is computed once and frozen. After that, any vector can be
projected onto the basis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from qmeans.core.errors import CapacityError, InsufficientDataError, NotTrainedError

logger = logging.getLogger(__name__)

RIDGE = 1e-9


@dataclass(frozen=True)
class Basis:
    """
    A frozen PCA basis.

    Attributes
    ----------
    mean : np.ndarray
        Training mean used for centring, shape (D,).
    components : np.ndarray
        Unit direction vectors as rows, shape (K, D). The entry of largest
        magnitude in each row is positive.
    eigenvalues : np.ndarray
        Variance along each direction, descending, shape (K,).
    """

    mean: np.ndarray
    components: np.ndarray
    eigenvalues: np.ndarray

    def __post_init__(self):
        for name in ('mean', 'components', 'eigenvalues'):
            arr = np.array(getattr(self, name), dtype=np.float64)
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)
        if self.components.ndim != 2 or self.components.shape[1] != self.mean.shape[0]:
            raise ValueError(
                f"components shape {self.components.shape} does not match "
                f"mean shape {self.mean.shape}"
            )

    @property
    def num_components(self) -> int:
        return self.components.shape[0]

    @property
    def input_dim(self) -> int:
        return self.mean.shape[0]

    def project(self, vector: np.ndarray) -> np.ndarray:
        vector = np.asarray(vector, dtype=np.float64)
        if vector.shape[-1] != self.input_dim:
            raise ValueError(
                f"expected vectors of length {self.input_dim}, got shape {vector.shape}"
            )
        return (vector - self.mean) @ self.components.T


def _fix_signs(directions: np.ndarray) -> np.ndarray:
    """Flip each row so its largest-magnitude entry is positive."""
    idx = np.argmax(np.abs(directions), axis=1)
    signs = np.sign(directions[np.arange(directions.shape[0]), idx])
    signs[signs == 0] = 1.0
    return directions * signs[:, None]


class PrincipalComponentAnalysis:
    """
    Accumulates samples and computes a frozen PCA basis.

    Parameters
    ----------
    max_samples : Optional[int]
        Optional capacity. Adding more samples raises ``CapacityError``.

    Examples
    --------
    >>> pca = PrincipalComponentAnalysis()
    >>> pca.add_samples(vectors)
    >>> basis = pca.compute_basis(3)
    >>> pca.project(vectors[0]).shape
    (3,)
    """

    def __init__(self, max_samples: Optional[int] = None):
        self.max_samples = max_samples
        self._samples: List[np.ndarray] = []
        self._dim: Optional[int] = None
        self.basis: Optional[Basis] = None

    @property
    def num_samples(self) -> int:
        return len(self._samples)

    @property
    def is_trained(self) -> bool:
        return self.basis is not None

    def add_sample(self, vector: np.ndarray) -> None:
        """
        Store one training vector.

        Raises
        ------
        CapacityError
            If the basis is already computed or ``max_samples`` is reached.
        """
        if self.basis is not None:
            raise CapacityError("cannot add samples after the basis is computed")
        if self.max_samples is not None and len(self._samples) >= self.max_samples:
            raise CapacityError(f"sample capacity of {self.max_samples} reached")

        vector = np.array(vector, dtype=np.float64).ravel()
        if self._dim is None:
            self._dim = vector.shape[0]
        elif vector.shape[0] != self._dim:
            raise ValueError(
                f"sample has length {vector.shape[0]}, expected {self._dim}"
            )
        self._samples.append(vector)

    def add_samples(self, vectors: Iterable[np.ndarray]) -> None:
        for vector in vectors:
            self.add_sample(vector)

    def compute_basis(self, k: int) -> Basis:
        """
        Compute and freeze the top-``k`` principal directions.

        Parameters
        ----------
        k : int
            Number of components to keep.

        Returns
        -------
        Basis
            The frozen basis, also stored on ``self.basis``.

        Raises
        ------
        InsufficientDataError
            If fewer than ``k + 1`` samples were added or ``k`` exceeds the
            feature dimension.
        """
        if k < 1:
            raise ValueError("k must be at least 1")
        if self.basis is not None:
            raise CapacityError("basis already computed")
        n = len(self._samples)
        if n < k + 1:
            raise InsufficientDataError(
                f"need at least {k + 1} samples for {k} components, have {n}"
            )
        if k > self._dim:
            raise InsufficientDataError(
                f"cannot keep {k} components of {self._dim}-dimensional features"
            )

        data = np.vstack(self._samples)
        mean = data.mean(axis=0)
        centered = data - mean
        cov = centered.T @ centered / max(n - 1, 1)

        # Constant feature columns make the covariance singular
        cov += RIDGE * np.eye(self._dim)

        eigenvalues, eigenvectors = np.linalg.eigh(cov)
        order = np.argsort(-eigenvalues, kind='stable')[:k]
        top_values = np.maximum(eigenvalues[order] - RIDGE, 0.0)
        directions = _fix_signs(eigenvectors[:, order].T)

        rank = int(np.sum(top_values > RIDGE))
        if rank < k:
            logger.warning(
                "Covariance has rank %d < %d requested components; "
                "trailing directions carry no variance", rank, k
            )

        self.basis = Basis(mean=mean, components=directions, eigenvalues=top_values)
        self._samples = []
        logger.info(
            "PCA basis computed: %d samples, %d -> %d dims, %.1f%% variance kept",
            n, self._dim, k, 100.0 * self.explained_variance_ratio(eigenvalues, top_values)
        )
        return self.basis

    @staticmethod
    def explained_variance_ratio(all_values: np.ndarray, kept: np.ndarray) -> float:
        total = float(np.sum(np.maximum(all_values - RIDGE, 0.0)))
        if total <= 0:
            return 0.0
        return float(np.sum(kept)) / total

    def project(self, vector: np.ndarray) -> np.ndarray:
        """
        Project a vector onto the basis.

        Raises
        ------
        NotTrainedError
            If ``compute_basis`` has not been called.
        """
        if self.basis is None:
            raise NotTrainedError("compute_basis must be called before project")
        return self.basis.project(vector)

    def project_many(self, vectors: np.ndarray) -> np.ndarray:
        if self.basis is None:
            raise NotTrainedError("compute_basis must be called before project")
        return self.basis.project(np.atleast_2d(np.asarray(vectors, dtype=np.float64)))

    @classmethod
    def from_basis(cls, basis: Basis) -> "PrincipalComponentAnalysis":
        """Wrap an existing basis, e.g. one loaded from disk."""
        pca = cls()
        pca._dim = basis.input_dim
        pca.basis = basis
        return pca

    def __repr__(self) -> str:
        if self.basis is None:
            return f"PrincipalComponentAnalysis(samples={self.num_samples}, trained=False)"
        return (
            f"PrincipalComponentAnalysis(dim={self.basis.input_dim}, "
            f"components={self.basis.num_components})"
        )
