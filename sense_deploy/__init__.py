"""
Sense Deployment Scripts
========================

Scripts for deploying and exercising Sense Protocol contracts.

Structure:
- tasks/series.py: Sponsor series, seed Space pools and sanity check swaps
- tasks/onboard_adapter.py: Deploy an adapter and its auto-roller, hand over to the multisig
- chain.py: Web3 connection, signing and impersonation
- registry.py: Artifacts and per-network deployment records
"""

__version__ = "1.0.0"
__author__ = "Sense Finance"
