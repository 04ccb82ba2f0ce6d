"""
Leaseguard - Land-Lease Compliance Orchestration

Step-based workflow engine driving detection, classification, decision,
action, verification and update phases with human approval gates.
"""

__version__ = "0.1.0"

from leaseguard.core.config import LeaseguardConfig
from leaseguard.orchestration.engine import WorkflowEngine

__all__ = [
    "__version__",
    "LeaseguardConfig",
    "WorkflowEngine",
]
