"""Human approval gates."""

from leaseguard.orchestration.approval.gateway import ApprovalGateway

__all__ = ["ApprovalGateway"]
