"""
Capability interfaces shared by the classifiers and the inference fan-out.
"""

from typing import Protocol, Sequence, runtime_checkable
import numpy as np
from PIL import Image
from ..models import ClassDefinition, ModelType, PredictionResult


@runtime_checkable
class ImageClassifier(Protocol):
    """Anything that can classify one encoded query image against a class set."""

    model_type: ModelType

    def classify(self, image: str, classes: Sequence[ClassDefinition]) -> PredictionResult:
        """
        Classify a query image.

        Args:
            image: Base64 encoded query image
            classes: Snapshot of the current class definitions

        Returns:
            PredictionResult for this classifier
        """
        ...


@runtime_checkable
class EmbeddingModel(Protocol):
    """A frozen function mapping an image to a fixed-length vector."""

    @property
    def is_ready(self) -> bool:
        ...

    def wait_until_ready(self, timeout: float = None) -> bool:
        """Block until the model is loaded; raise if loading failed."""
        ...

    def embed(self, image: Image.Image) -> np.ndarray:
        """Embed one image into a 1-D vector."""
        ...

    def embed_batch(self, images: Sequence[Image.Image]) -> np.ndarray:
        """Embed several images into a 2-D array, one row per image."""
        ...
