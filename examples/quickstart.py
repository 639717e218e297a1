#!/usr/bin/env python3
"""
QMeans Quick Start Example
==========================

Minimal example showing how to train a QMeans agent on the toy level.
"""

from qmeans import QLearnAgent, QMeansConfig, run_episode
from qmeans.envs import ToyLevelEnv

# Create environment
env = ToyLevelEnv(seed=0)

# Create agent: collect 500 vectors, then learn over 16 abstract states
agent = QLearnAgent(QMeansConfig(batch_size=500, num_components=6, num_clusters=16, seed=0))

# Training loop
for episode in range(100):
    reward = run_episode(env, agent, max_steps=400)

    if (episode + 1) % 10 == 0:
        stats = agent.get_stats()
        print(f"Episode {episode + 1}: Reward={reward:.1f}, "
              f"Phase={stats['phase']}, "
              f"Q-entries={stats['q_entries']}")

print(f"\nBest reward: {agent.best_reward:.1f}")
env.close()
