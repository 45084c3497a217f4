"""
POOLSCALER
==========
Autoscaling controller cho pool các worker instances, nhóm theo workload kind.

Modules:
- autoscaling: Policy, controller, virtual infrastructure, simulator
- utils: Logging helpers
"""

__version__ = "1.0.0"
__author__ = "Autoscaling Analysis Team"
