"""
Agent runner adapters.

The runtime only needs AgentRunnerInterface; real agent runtimes register
themselves under the ``effectflow.agents`` entry point group.
"""

from effectflow.infrastructure.agents.mock import MockAgentRunner, failing

__all__ = ["MockAgentRunner", "failing"]
