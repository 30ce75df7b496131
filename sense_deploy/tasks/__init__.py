"""
Deployment Tasks
================

Each task is a linear procedure run by an operator from start to finish:
- series: sponsor configured series and sanity check the Periphery swaps
- onboard_adapter: deploy and onboard an adapter with its auto-roller
"""

__all__ = ['series', 'onboard_adapter']
