"""Chat front end for the codeagent-wrapper CLI agent."""

__version__ = "0.1.0"
