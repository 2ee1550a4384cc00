"""
Review scoring module
Context-aware chunked LLM analysis, aggregation and grading
"""

from .chunking import ContextAwareChunker
from .review_analyzer import ReviewAnalyzer
from .pipeline import AnalysisPipeline

__all__ = ['ContextAwareChunker', 'ReviewAnalyzer', 'AnalysisPipeline']
