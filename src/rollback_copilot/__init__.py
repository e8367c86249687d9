"""Rollback Copilot.

Watches live latency observations for a deployed web app, classifies health
with deterministic rules, compares it to a known-good baseline and, when a
regression follows a recent deployment change, swaps the deployment back.
"""

__version__ = "0.1.0"
