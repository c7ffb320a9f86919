"""agentflow: decision engine for multi-agent issue delivery workflows."""

__version__ = "0.1.0"
