#!/usr/bin/env python3
"""
Toy Level Training with Progress Reporting
==========================================

Complete training example: collection, abstraction training, Q-learning,
greedy evaluation and checkpointing.
"""

import argparse
import logging
from collections import deque

import numpy as np

from qmeans import QLearnAgent, QMeansConfig, run_episode
from qmeans.envs import ToyLevelEnv


def train(
    num_episodes: int = 300,
    report_every: int = 10,
    num_clusters: int = 64,
    seed: int = 0,
    save_path: str = None,
    codebook_path: str = None
):
    """
    Train a QMeans agent on the toy level.

    Parameters
    ----------
    num_episodes : int
        Total episodes to train.
    report_every : int
        Print progress every N episodes.
    num_clusters : int
        Codebook size. Negative keeps every distinct projection.
    seed : int
        Seed for the level layout, clustering and exploration.
    save_path : str
        Optional path to save the trained agent.
    codebook_path : str
        Optional path to export the codebook.
    """
    print("=" * 60)
    print("QMeans Toy Level Training")
    print("=" * 60)

    env = ToyLevelEnv(seed=seed)
    config = QMeansConfig(
        num_components=8,
        num_clusters=num_clusters,
        batch_size=2000,
        epsilon=0.1,
        alpha=0.3,
        gamma=0.9,
        seed=seed,
    )
    agent = QLearnAgent(config)

    print(f"\nFeature dim: {config.feature_dim}")
    print(f"Components: {config.num_components}")
    print(f"Clusters: {config.num_clusters}")
    print(f"Collection batch: {config.batch_size}")
    print("-" * 60)

    recent_rewards = deque(maxlen=50)
    for episode in range(1, num_episodes + 1):
        recent_rewards.append(run_episode(env, agent, max_steps=400))

        if episode % report_every == 0:
            stats = agent.get_stats()
            cache = stats.get('cache', {})
            print(f"Episode {episode:4d} | "
                  f"Avg50: {np.mean(recent_rewards):8.1f} | "
                  f"Best: {agent.best_reward:8.1f} | "
                  f"Phase: {stats['phase']:10s} | "
                  f"Q: {stats['q_entries']:5d} | "
                  f"Cache hits: {cache.get('hits', 0)}")

    print("-" * 60)
    print(f"Best single episode: {agent.best_reward:.1f}")
    print(f"Total episodes: {agent.total_episodes}")

    if save_path:
        agent.save(save_path)
        print(f"Agent saved to: {save_path}")
    if codebook_path and agent.is_learning:
        agent.abstractor.save_codebook(codebook_path)
        print(f"Codebook saved to: {codebook_path}")

    env.close()
    return agent


def evaluate(agent_path: str, episodes: int = 5, seed: int = 0):
    """Play greedy episodes with a saved agent."""
    agent = QLearnAgent.load(agent_path)
    env = ToyLevelEnv(seed=seed)
    for i in range(episodes):
        reward = run_episode(env, agent, max_steps=400, training=False)
        x, _ = agent.total_reward()
        print(f"Evaluation episode {i + 1}: reward={reward:.1f} x={x:.0f}")
    env.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Train QMeans on the toy level")
    parser.add_argument("--episodes", type=int, default=300, help="Training episodes")
    parser.add_argument("--clusters", type=int, default=64, help="Codebook size")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--save", type=str, default=None, help="Agent save path")
    parser.add_argument("--codebook", type=str, default=None, help="Codebook export path")
    parser.add_argument("--evaluate", type=str, default=None, help="Evaluate a saved agent")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if args.evaluate:
        evaluate(args.evaluate, seed=args.seed)
    else:
        train(
            num_episodes=args.episodes,
            num_clusters=args.clusters,
            seed=args.seed,
            save_path=args.save,
            codebook_path=args.codebook,
        )
