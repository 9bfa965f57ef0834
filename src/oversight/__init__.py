"""Oversight - verification, rating and critic-fixer engine for autonomous agents."""

__version__ = "0.1.0"
