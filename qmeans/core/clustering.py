"""
Prototype clustering with Lloyd's k-means.

Projected training vectors are partitioned into a fixed number of groups.
The group means become the prototypes of the codebook, and any new vector
is mapped to its Euclidean-nearest prototype.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from qmeans.core.errors import EmptyClusterError, InsufficientDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Prototype:
    """A codebook entry: centroid vector in reduced space and its index."""

    index: int
    vector: np.ndarray

    def __post_init__(self):
        arr = np.array(self.vector, dtype=np.float64)
        arr.flags.writeable = False
        object.__setattr__(self, 'vector', arr)


PrototypeLike = Union[Sequence[Prototype], np.ndarray]


def _as_matrix(prototypes: PrototypeLike) -> np.ndarray:
    if isinstance(prototypes, np.ndarray):
        return np.atleast_2d(prototypes)
    return np.array([p.vector for p in prototypes], dtype=np.float64)


def squared_distances(vectors: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Pairwise squared Euclidean distances, shape (n_vectors, n_centroids)."""
    diff = vectors[:, None, :] - centroids[None, :, :]
    return np.einsum('ijk,ijk->ij', diff, diff)


def nearest_index(vector: np.ndarray, prototypes: PrototypeLike) -> int:
    """
    Index of the Euclidean-nearest prototype. Ties go to the lowest index.

    Parameters
    ----------
    vector : np.ndarray
        Vector in reduced space.
    prototypes : Sequence[Prototype] or np.ndarray
        Codebook, as prototypes or as a (k, d) matrix.
    """
    centroids = _as_matrix(prototypes)
    if centroids.shape[0] == 0:
        raise ValueError("cannot search an empty codebook")
    vector = np.asarray(vector, dtype=np.float64)
    dists = np.linalg.norm(centroids - vector, axis=1)
    return int(np.argmin(dists))


class KMeansClusterer:
    """
    Lloyd's k-means with deterministic seeding and empty-cluster repair.

    The first centroid is a row drawn with the seeded generator; each further
    centroid is the row farthest from those already chosen. When a cluster
    ends up empty after assignment, the point farthest from its own centroid
    (among clusters with more than one member) is moved into it.

    Parameters
    ----------
    seed : Optional[int]
        Seed for the initial centroid draw. Equal seeds and inputs give
        identical groupings.

    Examples
    --------
    >>> clusterer = KMeansClusterer(seed=0)
    >>> groups = clusterer.cluster(projections, count=3, iterations=50)
    >>> prototypes = clusterer.centroids(groups)
    >>> nearest_index(projections[0], prototypes)
    1
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.last_iterations = 0
        self.reseeded = 0

    def _seed_centroids(self, vectors: np.ndarray, count: int) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        chosen = [int(rng.integers(vectors.shape[0]))]
        diff = vectors - vectors[chosen[0]]
        closest = np.einsum('ij,ij->i', diff, diff)
        while len(chosen) < count:
            closest[chosen] = -1.0
            nxt = int(np.argmax(closest))
            chosen.append(nxt)
            diff = vectors - vectors[nxt]
            closest = np.minimum(closest, np.einsum('ij,ij->i', diff, diff))
        return vectors[chosen].copy()

    def _repair_empty(self, vectors: np.ndarray, labels: np.ndarray,
                      centroids: np.ndarray, count: int) -> np.ndarray:
        counts = np.bincount(labels, minlength=count)
        for empty in np.flatnonzero(counts == 0):
            movable = counts[labels] > 1
            if not movable.any():
                break
            own = np.einsum('ij,ij->i', vectors - centroids[labels], vectors - centroids[labels])
            own[~movable] = -1.0
            far = int(np.argmax(own))
            counts[labels[far]] -= 1
            labels[far] = empty
            counts[empty] = 1
            centroids[empty] = vectors[far]
            self.reseeded += 1
            logger.debug("Re-seeded empty cluster %d from point %d", empty, far)
        return labels

    def fit(
        self,
        vectors: np.ndarray,
        count: int,
        iterations: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Run k-means and return the final assignment and centroids.

        Parameters
        ----------
        vectors : np.ndarray
            Data, shape (n, d).
        count : int
            Number of clusters.
        iterations : int
            Maximum number of assign/update rounds.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            (labels of shape (n,), centroids of shape (count, d)).
        """
        vectors = np.atleast_2d(np.asarray(vectors, dtype=np.float64))
        n = vectors.shape[0]
        if count < 1:
            raise ValueError("count must be at least 1")
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        if count > n:
            raise InsufficientDataError(
                f"cannot form {count} clusters from {n} vectors"
            )

        centroids = self._seed_centroids(vectors, count)
        labels = np.full(n, -1, dtype=np.int64)
        self.reseeded = 0

        for iteration in range(1, iterations + 1):
            new_labels = np.argmin(squared_distances(vectors, centroids), axis=1)
            new_labels = self._repair_empty(vectors, new_labels, centroids, count)

            changed = int(np.sum(new_labels != labels))
            labels = new_labels
            for c in range(count):
                centroids[c] = vectors[labels == c].mean(axis=0)

            self.last_iterations = iteration
            if changed == 0:
                logger.debug("k-means converged after %d iterations", iteration)
                break
        else:
            logger.debug("k-means stopped at the %d iteration cap", iterations)

        return labels, centroids

    def cluster(self, vectors: np.ndarray, count: int, iterations: int) -> List[np.ndarray]:
        """
        Partition ``vectors`` into ``count`` groups.

        Returns
        -------
        List[np.ndarray]
            One (n_i, d) array of member vectors per cluster, in cluster order.
        """
        vectors = np.atleast_2d(np.asarray(vectors, dtype=np.float64))
        labels, _ = self.fit(vectors, count, iterations)
        return [vectors[labels == c] for c in range(count)]

    @staticmethod
    def centroids(groups: Sequence[np.ndarray]) -> List[Prototype]:
        """
        Mean of each group as a prototype.

        Raises
        ------
        EmptyClusterError
            If any group has no members.
        """
        prototypes = []
        for index, group in enumerate(groups):
            group = np.asarray(group, dtype=np.float64)
            if group.ndim != 2 or group.shape[0] == 0:
                raise EmptyClusterError(f"group {index} has no members")
            prototypes.append(Prototype(index=index, vector=group.mean(axis=0)))
        return prototypes

    nearest_index = staticmethod(nearest_index)

    def __repr__(self) -> str:
        return f"KMeansClusterer(seed={self.seed})"
