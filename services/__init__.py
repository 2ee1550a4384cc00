"""
Service layer
"""

from .analysis_service import ReviewAnalysisService, build_default_service, public_status

__all__ = ['ReviewAnalysisService', 'build_default_service', 'public_status']
