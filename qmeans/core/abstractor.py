"""
State abstraction: PCA projection followed by nearest-prototype lookup.

The abstractor is trained once on a batch of feature vectors. Afterwards it
maps any feature vector to a discrete state id, the index of the nearest
prototype in the codebook, memoizing the answer per projected vector.
"""

from __future__ import annotations

import logging
import zipfile
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from qmeans.core.clustering import KMeansClusterer, Prototype, nearest_index
from qmeans.core.errors import AlreadyTrainedError, LoadError, NotTrainedError
from qmeans.core.pca import Basis, PrincipalComponentAnalysis

logger = logging.getLogger(__name__)

CACHE_DECIMALS = 8
CODEBOOK_FORMAT_VERSION = 1


class ProjectionCache:
    """
    Projected vector to prototype index, keyed on 8-decimal rounded values.

    Unbounded by default. With a ``capacity`` the least recently used entry
    is evicted first.
    """

    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be positive or None")
        self.capacity = capacity
        self._entries: "OrderedDict[Tuple[float, ...], int]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(projection: np.ndarray) -> Tuple[float, ...]:
        # +0.0 folds negative zero into positive zero
        return tuple((np.round(projection, CACHE_DECIMALS) + 0.0).tolist())

    def get(self, key: Tuple[float, ...]) -> Optional[int]:
        index = self._entries.get(key)
        if index is None:
            self.misses += 1
            return None
        self.hits += 1
        if self.capacity is not None:
            self._entries.move_to_end(key)
        return index

    def put(self, key: Tuple[float, ...], index: int) -> None:
        self._entries[key] = index
        if self.capacity is not None:
            self._entries.move_to_end(key)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return (
            f"ProjectionCache(size={len(self)}, capacity={self.capacity}, "
            f"hits={self.hits}, misses={self.misses})"
        )


class StateAbstractor:
    """
    Maps feature vectors to abstract state ids.

    Parameters
    ----------
    components : int
        Number of principal components.
    clusters : int
        Codebook size. A negative value skips clustering and keeps every
        distinct training projection as its own prototype.
    iterations : int
        Iteration cap for k-means.
    seed : Optional[int]
        Seed for k-means initialisation.
    cache_capacity : Optional[int]
        LRU bound for the projection cache, or None for unbounded.

    Examples
    --------
    >>> abstractor = StateAbstractor(components=4, clusters=3, iterations=50, seed=0)
    >>> abstractor.train(batch)
    >>> abstractor.resolve(batch[0])
    2
    """

    def __init__(
        self,
        components: int = 8,
        clusters: int = 64,
        iterations: int = 100,
        seed: Optional[int] = None,
        cache_capacity: Optional[int] = None
    ):
        self.components = components
        self.clusters = clusters
        self.iterations = iterations
        self.seed = seed

        self.pca: Optional[PrincipalComponentAnalysis] = None
        self.codebook: List[Prototype] = []
        self._codebook_matrix: Optional[np.ndarray] = None
        self.cache = ProjectionCache(cache_capacity)

    @property
    def is_trained(self) -> bool:
        return self._codebook_matrix is not None

    @property
    def codebook_size(self) -> int:
        return len(self.codebook)

    @property
    def basis(self) -> Optional[Basis]:
        return self.pca.basis if self.pca is not None else None

    def _set_codebook(self, vectors: np.ndarray) -> None:
        self.codebook = [Prototype(index=i, vector=v) for i, v in enumerate(vectors)]
        matrix = np.array(vectors, dtype=np.float64)
        matrix.flags.writeable = False
        self._codebook_matrix = matrix

    def train(
        self,
        batch: Sequence[np.ndarray],
        components: Optional[int] = None,
        clusters: Optional[int] = None,
        iterations: Optional[int] = None
    ) -> None:
        """
        Fit the basis and the codebook on a batch of feature vectors.

        Parameters
        ----------
        batch : Sequence[np.ndarray]
            Training feature vectors.
        components, clusters, iterations : Optional[int]
            Override the values given at construction.

        Raises
        ------
        AlreadyTrainedError
            If called a second time.
        InsufficientDataError
            If the batch is too small for the requested sizes.
        """
        if self.is_trained:
            raise AlreadyTrainedError("abstractor is already trained")
        components = self.components if components is None else components
        clusters = self.clusters if clusters is None else clusters
        iterations = self.iterations if iterations is None else iterations
        if clusters == 0:
            raise ValueError("clusters must be positive, or negative for exact mode")

        pca = PrincipalComponentAnalysis()
        pca.add_samples(batch)
        pca.compute_basis(components)
        projections = pca.project_many(np.vstack(batch))

        if clusters < 0:
            # Exact mode: one prototype per distinct projection
            seen: Dict[Tuple[float, ...], int] = {}
            for row, projection in enumerate(projections):
                seen.setdefault(ProjectionCache.key(projection), row)
            vectors = projections[sorted(seen.values())]
            logger.info("Exact mode: %d distinct projections", len(vectors))
        else:
            clusterer = KMeansClusterer(seed=self.seed)
            groups = clusterer.cluster(projections, clusters, iterations)
            vectors = np.array([p.vector for p in clusterer.centroids(groups)])
            logger.info(
                "Clustered %d projections into %d prototypes (%d iterations, %d re-seeded)",
                len(projections), len(vectors), clusterer.last_iterations, clusterer.reseeded
            )

        self.components, self.clusters, self.iterations = components, clusters, iterations
        self.pca = pca
        self._set_codebook(vectors)
        self.cache.clear()

    def project(self, vector: np.ndarray) -> np.ndarray:
        if self.pca is None:
            raise NotTrainedError("abstractor must be trained before projecting")
        return self.pca.project(vector)

    def resolve(self, vector: np.ndarray) -> int:
        """
        Abstract state id of a feature vector.

        Raises
        ------
        NotTrainedError
            If ``train`` has not been called.
        """
        if not self.is_trained:
            raise NotTrainedError("abstractor must be trained before resolving states")
        key = ProjectionCache.key(self.pca.project(vector))
        index = self.cache.get(key)
        if index is None:
            index = nearest_index(np.array(key), self._codebook_matrix)
            self.cache.put(key, index)
        return index

    def resolve_prototype(self, vector: np.ndarray) -> np.ndarray:
        """Centroid vector of the state ``vector`` resolves to."""
        return self._codebook_matrix[self.resolve(vector)]

    def cache_info(self) -> Dict[str, Optional[int]]:
        return {
            'hits': self.cache.hits,
            'misses': self.cache.misses,
            'size': len(self.cache),
            'capacity': self.cache.capacity,
        }

    def save_codebook(self, path: Union[str, Path]) -> None:
        """
        Write the basis and codebook to an ``.npz`` file.

        Parameters
        ----------
        path : str or Path
            Destination file.
        """
        if not self.is_trained:
            raise NotTrainedError("nothing to save before training")
        basis = self.pca.basis
        with open(path, 'wb') as f:
            np.savez(
                f,
                version=np.array(CODEBOOK_FORMAT_VERSION),
                mean=basis.mean,
                components=basis.components,
                eigenvalues=basis.eigenvalues,
                prototypes=self._codebook_matrix,
                settings=np.array([self.components, self.clusters, self.iterations]),
            )
        logger.info("Saved codebook with %d prototypes to %s", self.codebook_size, path)

    @classmethod
    def load_codebook(
        cls,
        path: Union[str, Path],
        cache_capacity: Optional[int] = None
    ) -> "StateAbstractor":
        """
        Rebuild a trained abstractor from a file written by ``save_codebook``.

        Raises
        ------
        LoadError
            If the file is missing, corrupt or of another format version.
        """
        try:
            with np.load(path, allow_pickle=False) as data:
                version = int(data['version'])
                if version != CODEBOOK_FORMAT_VERSION:
                    raise LoadError(f"unsupported codebook format version {version}")
                basis = Basis(
                    mean=data['mean'],
                    components=data['components'],
                    eigenvalues=data['eigenvalues'],
                )
                prototypes = np.array(data['prototypes'], dtype=np.float64)
                components, clusters, iterations = (int(v) for v in data['settings'])
        except LoadError:
            raise
        except (OSError, EOFError, KeyError, ValueError, TypeError, AttributeError,
                zipfile.BadZipFile) as e:
            raise LoadError(f"cannot load codebook from {path}: {e}") from e

        if prototypes.ndim != 2 or prototypes.shape[1] != basis.num_components:
            raise LoadError(
                f"prototype shape {prototypes.shape} does not match "
                f"{basis.num_components} components"
            )

        abstractor = cls(
            components=components,
            clusters=clusters,
            iterations=iterations,
            cache_capacity=cache_capacity,
        )
        abstractor.pca = PrincipalComponentAnalysis.from_basis(basis)
        abstractor._set_codebook(prototypes)
        logger.info("Loaded codebook with %d prototypes from %s", abstractor.codebook_size, path)
        return abstractor

    def __repr__(self) -> str:
        return (
            f"StateAbstractor(components={self.components}, clusters={self.clusters}, "
            f"trained={self.is_trained}, codebook={self.codebook_size})"
        )
