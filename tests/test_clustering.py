"""Tests for KMeansClusterer, Prototype and nearest_index."""

import numpy as np
import pytest
from qmeans.core.clustering import KMeansClusterer, Prototype, nearest_index
from qmeans.core.errors import EmptyClusterError, InsufficientDataError


def blobs(per_blob=10, seed=0):
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])
    return np.vstack([c + rng.normal(scale=0.3, size=(per_blob, 2)) for c in centers])


class TestKMeansClusterer:
    """Test suite for KMeansClusterer."""

    def test_separates_blobs(self):
        """Test that well-separated blobs end up in separate groups."""
        data = blobs()
        labels, centroids = KMeansClusterer(seed=0).fit(data, count=3, iterations=50)

        for b in range(3):
            assert len(set(labels[b * 10:(b + 1) * 10])) == 1
        assert len(set(labels)) == 3
        assert centroids.shape == (3, 2)

    def test_groups_partition_input(self):
        """Test that groups hold every vector exactly once."""
        data = blobs()
        groups = KMeansClusterer(seed=0).cluster(data, count=3, iterations=50)
        assert len(groups) == 3
        assert sum(len(g) for g in groups) == len(data)
        assert sorted(len(g) for g in groups) == [10, 10, 10]

    def test_reproducible(self):
        """Test that a fixed seed gives identical groupings."""
        rng = np.random.default_rng(5)
        data = rng.normal(size=(60, 3))
        first = KMeansClusterer(seed=7).cluster(data, count=5, iterations=100)
        second = KMeansClusterer(seed=7).cluster(data, count=5, iterations=100)
        for a, b in zip(first, second):
            assert np.array_equal(a, b)

    def test_early_stop(self):
        """Test that iteration stops once assignments are stable."""
        clusterer = KMeansClusterer(seed=0)
        clusterer.fit(blobs(), count=3, iterations=100)
        assert clusterer.last_iterations < 100

    def test_iteration_cap(self):
        """Test that the iteration cap is respected."""
        rng = np.random.default_rng(2)
        clusterer = KMeansClusterer(seed=0)
        clusterer.fit(rng.normal(size=(200, 2)), count=8, iterations=1)
        assert clusterer.last_iterations == 1

    def test_empty_cluster_reseeded(self):
        """Test that duplicate points never leave a cluster empty."""
        data = np.array([[0.0, 0.0], [0.0, 0.0], [0.0, 0.0], [10.0, 10.0]])
        clusterer = KMeansClusterer(seed=0)
        groups = clusterer.cluster(data, count=3, iterations=10)

        assert all(len(g) > 0 for g in groups)
        assert sum(len(g) for g in groups) == 4
        assert clusterer.reseeded > 0

    def test_all_identical_points(self):
        """Test clustering a batch without any variance."""
        data = np.ones((5, 2))
        groups = KMeansClusterer(seed=1).cluster(data, count=5, iterations=10)
        assert [len(g) for g in groups] == [1, 1, 1, 1, 1]

    def test_too_many_clusters(self):
        """Test that count cannot exceed the number of vectors."""
        with pytest.raises(InsufficientDataError):
            KMeansClusterer(seed=0).cluster(np.zeros((2, 2)), count=3, iterations=5)

    def test_invalid_arguments(self):
        """Test validation of count and iterations."""
        with pytest.raises(ValueError):
            KMeansClusterer().cluster(np.zeros((4, 2)), count=0, iterations=5)
        with pytest.raises(ValueError):
            KMeansClusterer().cluster(np.zeros((4, 2)), count=2, iterations=0)

    def test_centroids(self):
        """Test that prototypes are group means."""
        groups = [np.array([[0.0, 0.0], [2.0, 2.0]]), np.array([[5.0, 1.0]])]
        prototypes = KMeansClusterer.centroids(groups)
        assert [p.index for p in prototypes] == [0, 1]
        np.testing.assert_array_equal(prototypes[0].vector, [1.0, 1.0])
        np.testing.assert_array_equal(prototypes[1].vector, [5.0, 1.0])

    def test_centroids_empty_group(self):
        """Test that an empty group is rejected."""
        with pytest.raises(EmptyClusterError):
            KMeansClusterer.centroids([np.array([[1.0, 1.0]]), np.empty((0, 2))])

    def test_repr(self):
        """Test string representation."""
        assert "seed=3" in repr(KMeansClusterer(seed=3))


class TestNearestIndex:
    """Test suite for nearest_index."""

    def test_nearest(self):
        """Test the nearest prototype is found."""
        prototypes = [Prototype(0, [0.0, 0.0]), Prototype(1, [5.0, 5.0])]
        assert nearest_index(np.array([4.0, 4.5]), prototypes) == 1
        assert nearest_index(np.array([0.5, -1.0]), prototypes) == 0

    def test_ties_go_to_lowest_index(self):
        """Test tie-breaking."""
        matrix = np.array([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0]])
        assert nearest_index(np.zeros(2), matrix) == 0

    def test_empty_codebook(self):
        """Test searching an empty codebook."""
        with pytest.raises(ValueError):
            nearest_index(np.zeros(2), np.empty((0, 2)))

    def test_prototype_is_frozen(self):
        """Test that prototype vectors are read-only."""
        p = Prototype(0, [1.0, 2.0])
        with pytest.raises(ValueError):
            p.vector[0] = 3.0
