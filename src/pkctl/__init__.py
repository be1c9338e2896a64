"""pkctl - command line client for a secrets agent."""

__version__ = "0.1.0"
