"""Tier and service-availability polling."""

from disney_rag.status.poller import StatusPoller, StatusSnapshot

__all__ = ["StatusPoller", "StatusSnapshot"]
