"""
Review acquisition for the authenticity pipeline
Credential rotation, egress routing, source adapters and orchestration
"""

from .credential_pool import CredentialPool
from .route_selector import RouteSelector
from .orchestrator import AcquisitionOrchestrator

__all__ = ['CredentialPool', 'RouteSelector', 'AcquisitionOrchestrator']
