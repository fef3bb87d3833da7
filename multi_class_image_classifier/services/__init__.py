"""
Service interfaces for the multi-model image classifier.
"""

from .interfaces import ImageClassifier, EmbeddingModel

__all__ = [
    "ImageClassifier",
    "EmbeddingModel"
]
