"""Agents for QMeans."""

from qmeans.agents.mario_agent import QLearnAgent, run_episode
from qmeans.agents.q_learner import QLearner

__all__ = ["QLearnAgent", "QLearner", "run_episode"]
