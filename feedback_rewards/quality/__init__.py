"""Feedback text quality analysis."""
from .analyzer import QualityAnalyzer
from .client import ScoringClient, ScoringResponse
from .heuristics import (
    analyze_locally,
    determine_category,
    determine_subcategory,
    suggestions
)

__all__ = (
    'QualityAnalyzer',
    'ScoringClient',
    'ScoringResponse',
    'analyze_locally',
    'determine_category',
    'determine_subcategory',
    'suggestions',
)
