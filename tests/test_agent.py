"""Tests for QLearnAgent, QMeansConfig and run_episode."""

import pickle

import gymnasium as gym
import numpy as np
import pytest
from qmeans import QLearnAgent, QMeansConfig, RewardWeights, StateAbstractor, run_episode
from qmeans.core.errors import LoadError, NotTrainedError
from qmeans.core.features import FeatureExtractor, Observation
from qmeans.envs import ToyLevelEnv


def random_observation(rng, x=32.0, y=192.0, mode=2):
    return Observation(
        level_scene=rng.integers(0, 2, size=(22, 22)),
        enemies=(rng.random((22, 22)) < 0.1).astype(np.int8),
        mode=mode,
        may_jump=bool(rng.integers(2)),
        on_ground=True,
        can_shoot=mode == 2,
        position=(x, y),
    )


def trained_abstractor(n=50, seed=0):
    rng = np.random.default_rng(seed)
    extractor = FeatureExtractor()
    batch = [extractor.representation(random_observation(rng)) for _ in range(n)]
    abstractor = StateAbstractor(components=4, clusters=3, iterations=50, seed=0)
    abstractor.train(batch)
    return abstractor


class TestQMeansConfig:
    """Test suite for QMeansConfig."""

    def test_defaults(self):
        """Test default configuration."""
        config = QMeansConfig()
        assert config.half_width == 3
        assert config.num_components == 8
        assert config.num_clusters == 64
        assert config.epsilon == 0.1
        assert config.alpha == 0.3
        assert config.gamma == 0.9
        assert config.initial_value == 20.0
        assert config.feature_dim == 76

    def test_custom(self):
        """Test custom configuration."""
        config = QMeansConfig(num_clusters=16, half_width=2)
        assert config.num_clusters == 16
        assert config.feature_dim == 36

    def test_validation(self):
        """Test configuration validation."""
        with pytest.raises(ValueError):
            QMeansConfig(num_clusters=0)

        with pytest.raises(ValueError):
            QMeansConfig(epsilon=1.5)

        with pytest.raises(ValueError):
            QMeansConfig(half_width=0)

        with pytest.raises(ValueError):
            QMeansConfig(batch_size=8, num_components=8)

        with pytest.raises(ValueError):
            QMeansConfig(cache_capacity=0)

    def test_dict_round_trip(self):
        """Test converting to and from a plain dict."""
        config = QMeansConfig(seed=3, reward=RewardWeights(collision=-10.0))
        restored = QMeansConfig.from_dict(config.to_dict())
        assert restored == config
        assert isinstance(restored.reward, RewardWeights)
        assert restored.reward.collision == -10.0


class TestQLearnAgent:
    """Test suite for QLearnAgent."""

    def test_init_default(self):
        """Test agent initialization with defaults."""
        agent = QLearnAgent()
        assert not agent.is_learning
        assert agent.total_episodes == 0
        assert agent.extractor.feature_dim == 76

    def test_collection_returns_buttons(self):
        """Test that the collection phase returns a valid button vector."""
        agent = QLearnAgent(QMeansConfig(seed=0))
        buttons = agent.get_action(random_observation(np.random.default_rng(0)))
        assert buttons.dtype == bool
        assert buttons.shape == (5,)
        assert len(agent.batch) == 1

    def test_collection_cannot_evaluate(self):
        """Test that greedy play requires a trained abstraction."""
        agent = QLearnAgent()
        with pytest.raises(NotTrainedError):
            agent.get_action(random_observation(np.random.default_rng(0)), training=False)

    def test_auto_train(self):
        """Test that the abstraction is trained once the batch is full."""
        config = QMeansConfig(batch_size=20, num_components=4, num_clusters=3, seed=0)
        agent = QLearnAgent(config)
        rng = np.random.default_rng(1)
        for _ in range(20):
            agent.get_action(random_observation(rng))

        assert agent.is_learning
        assert agent.batch == []
        assert agent.abstractor.codebook_size == 3
        assert agent.learner.table.num_states == 3

    def test_manual_training(self):
        """Test training the abstraction on demand."""
        config = QMeansConfig(batch_size=20, num_components=4, num_clusters=3, seed=0)
        agent = QLearnAgent(config, auto_train=False)
        rng = np.random.default_rng(1)
        for _ in range(25):
            agent.get_action(random_observation(rng))
        assert not agent.is_learning
        assert len(agent.batch) == 25

        agent.train_abstraction()
        assert agent.is_learning

    def test_first_update(self):
        """Test the value written by the first learning step."""
        config = QMeansConfig(epsilon=0.0, seed=0)
        agent = QLearnAgent(config, abstractor=trained_abstractor())
        rng = np.random.default_rng(2)
        agent.reset(start_x=0.0)

        agent.get_action(random_observation(rng, x=5.0))
        assert len(agent.learner.table) == 0
        agent.get_action(random_observation(rng, x=10.0))

        assert agent.state.reward() == pytest.approx(4.5)
        assert len(agent.learner.table) == 1
        (_, value), = agent.learner.table.items()
        assert 20.0 < value < 22.5
        assert value == pytest.approx(20.0 + 0.3 * (4.5 + 0.9 * 20.0 - 20.0))

    def test_fall_is_terminal_update(self):
        """Test that a fall is learned without bootstrapping."""
        config = QMeansConfig(epsilon=0.0, seed=0)
        agent = QLearnAgent(config, abstractor=trained_abstractor())
        rng = np.random.default_rng(3)
        agent.get_action(random_observation(rng))
        agent.get_action(random_observation(rng, y=240.0))

        assert agent.state.terminal
        (_, value), = agent.learner.table.items()
        assert value == pytest.approx(20.0 + 0.3 * (-1000.0 - 20.0))

    def test_evaluation_does_not_learn(self):
        """Test that greedy play leaves the table untouched."""
        agent = QLearnAgent(abstractor=trained_abstractor())
        rng = np.random.default_rng(4)
        for step in range(5):
            agent.get_action(random_observation(rng, x=32.0 + step), training=False)
        assert len(agent.learner.table) == 0

    def test_reset(self):
        """Test that reset starts a new episode and keeps values."""
        agent = QLearnAgent(abstractor=trained_abstractor())
        rng = np.random.default_rng(5)
        agent.get_action(random_observation(rng, x=40.0))
        agent.get_action(random_observation(rng, x=48.0))
        entries = len(agent.learner.table)

        agent.reset(start_x=10.0)
        assert agent.total_reward() == (10.0, 0.0)
        assert len(agent.learner.table) == entries

        agent.get_action(random_observation(rng, x=12.0))
        assert len(agent.learner.table) == entries

    def test_stats(self):
        """Test statistics retrieval."""
        agent = QLearnAgent()
        stats = agent.get_stats()
        assert stats['phase'] == 'collecting'
        assert 'cache' not in stats

        agent = QLearnAgent(abstractor=trained_abstractor())
        agent.get_action(random_observation(np.random.default_rng(6)))
        stats = agent.get_stats()
        assert stats['phase'] == 'learning'
        assert stats['codebook_size'] == 3
        assert stats['cache']['misses'] == 1

    def test_save_load(self, tmp_path):
        """Test saving and loading the agent."""
        agent = QLearnAgent(QMeansConfig(seed=0), abstractor=trained_abstractor())
        rng = np.random.default_rng(7)
        for step in range(4):
            agent.get_action(random_observation(rng, x=32.0 + 4 * step))
        agent.learner.epsilon = 0.05

        path = tmp_path / "agent.pkl"
        agent.save(path)
        loaded = QLearnAgent.load(path)

        assert loaded.config == agent.config
        assert loaded.learner.table == agent.learner.table
        assert loaded.learner.epsilon == 0.05
        assert loaded.total_steps == agent.total_steps
        assert loaded.abstractor.codebook_size == 3
        v = agent.state.representation()
        assert loaded.abstractor.resolve(v) == agent.abstractor.resolve(v)

    def test_load_corrupt(self, tmp_path):
        """Test that a broken checkpoint raises LoadError."""
        path = tmp_path / "broken.pkl"
        path.write_bytes(b"junk")
        with pytest.raises(LoadError):
            QLearnAgent.load(path)
        with pytest.raises(LoadError):
            QLearnAgent.load(tmp_path / "missing.pkl")

    def test_load_incomplete_checkpoint(self, tmp_path):
        """Test that checkpoints with missing or mistyped entries raise LoadError."""
        path = tmp_path / "partial.pkl"
        with open(path, 'wb') as f:
            pickle.dump({'config': QMeansConfig(), 'abstractor': trained_abstractor()}, f)
        with pytest.raises(LoadError):
            QLearnAgent.load(path)

        agent = QLearnAgent(abstractor=trained_abstractor())
        agent.save(path)
        with open(path, 'rb') as f:
            state = pickle.load(f)
        state['abstractor'] = None
        with open(path, 'wb') as f:
            pickle.dump(state, f)
        with pytest.raises(LoadError):
            QLearnAgent.load(path)

        with open(path, 'wb') as f:
            pickle.dump(["not", "a", "checkpoint"], f)
        with pytest.raises(LoadError):
            QLearnAgent.load(path)

    def test_repr(self):
        """Test string representation."""
        assert "collecting" in repr(QLearnAgent())


class TestRunEpisode:
    """Test suite for playing the toy level."""

    def test_training_run(self):
        """Test that an agent collects, trains and learns on the toy level."""
        env = ToyLevelEnv(seed=0, max_steps=150)
        config = QMeansConfig(batch_size=100, num_components=4, num_clusters=8, seed=0)
        agent = QLearnAgent(config)

        for _ in range(100):
            if agent.is_learning:
                break
            run_episode(env, agent, max_steps=150)
        assert agent.is_learning
        collecting_episodes = agent.total_episodes

        for _ in range(3):
            reward = run_episode(env, agent, max_steps=150)
            assert np.isfinite(reward)

        assert agent.total_episodes == collecting_episodes + 3
        assert len(agent.learner.table) > 0
        assert agent.best_reward > float('-inf')

    def test_evaluation_run(self):
        """Test a greedy episode with a trained agent."""
        env = ToyLevelEnv(seed=1, max_steps=60)
        config = QMeansConfig(batch_size=50, num_components=4, num_clusters=4, seed=0)
        agent = QLearnAgent(config)
        for _ in range(100):
            if agent.is_learning:
                break
            run_episode(env, agent, max_steps=60)
        assert agent.is_learning

        entries = len(agent.learner.table)
        run_episode(env, agent, max_steps=60, training=False)
        assert len(agent.learner.table) == entries

    def test_registered(self):
        """Test the gymnasium registration."""
        assert "qmeans/ToyLevel-v0" in gym.registry
