"""
Statistical baseline: nearest class by average color histogram.

There is no training phase. Class descriptors are computed from the current
samples at query time, so the baseline always reflects the latest classes.
"""

import logging
import math
import threading
from typing import Dict, Optional, Sequence
import numpy as np
from PIL import Image
from .config import BaselineConfig
from .image_utils import load_image
from .models.data_models import ClassDefinition, ModelType, PredictionResult
from .exceptions import ConfigurationError, InsufficientDataError


logger = logging.getLogger(__name__)


class ColorHistogramClassifier:
    """
    Classifies images by comparing color histograms with per-class centroids.

    Deterministic: the same classes and query always produce the same result.
    """

    model_type = ModelType.BASELINE

    def __init__(self, config: Optional[BaselineConfig] = None, cache_size: int = 512):
        """
        Initialize the baseline classifier.

        Args:
            config: Baseline configuration (defaults to the global config)
            cache_size: Maximum number of per-sample features kept in memory
        """
        if config is None:
            from .config import config as classifier_config
            config = classifier_config.baseline

        if config.bins_per_channel <= 0:
            raise ConfigurationError("bins_per_channel must be positive")
        if config.thumbnail_size <= 0:
            raise ConfigurationError("thumbnail_size must be positive")

        self.config = config
        self.cache_size = cache_size
        self._feature_cache: Dict[str, np.ndarray] = {}
        self._cache_lock = threading.Lock()

    @property
    def max_distance(self) -> float:
        """Largest possible Euclidean distance between two histogram features."""
        return math.sqrt(2 * 3)

    def describe(self, image: Image.Image) -> np.ndarray:
        """
        Compute the per-channel color histogram of an image.

        Each channel's histogram is normalized to sum to 1, so the feature has
        3 * bins_per_channel entries.
        """
        size = self.config.thumbnail_size
        pixels = np.asarray(image.convert("RGB").resize((size, size), Image.Resampling.BILINEAR))

        channels = []
        for channel in range(3):
            counts, _ = np.histogram(pixels[:, :, channel], bins=self.config.bins_per_channel, range=(0, 256))
            channels.append(counts / counts.sum())
        return np.concatenate(channels).astype(np.float64)

    def class_descriptors(self, classes: Sequence[ClassDefinition]) -> np.ndarray:
        """
        Average the sample features of every class.

        Returns:
            Array of shape (len(classes), 3 * bins_per_channel)

        Raises:
            InsufficientDataError: If there are no classes or a class has no samples
        """
        if not classes:
            raise InsufficientDataError("No classes defined")

        empty = [c.name for c in classes if c.sample_count == 0]
        if empty:
            raise InsufficientDataError(f"Classes without samples: {', '.join(empty)}")

        return np.stack([
            np.mean([self._sample_feature(payload) for payload in class_def.samples], axis=0)
            for class_def in classes
        ])

    def classify(self, image: str, classes: Sequence[ClassDefinition]) -> PredictionResult:
        """
        Classify a query image against the current classes.

        Raises:
            InsufficientDataError: If any class has zero samples
            InvalidImageError: If the query or a sample cannot be decoded
        """
        descriptors = self.class_descriptors(classes)
        query = self.describe(load_image(image))

        distances = np.linalg.norm(descriptors - query, axis=1)
        best = int(np.argmin(distances))
        confidence = float(np.clip(1.0 - distances[best] / self.max_distance, 0.0, 1.0))
        logger.debug(f"Nearest histogram: {classes[best].name!r} at distance {distances[best]:.4f}")

        return PredictionResult(
            model_type=self.model_type,
            class_name=classes[best].name,
            confidence=confidence,
            metadata={"distance": float(distances[best])}
        )

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._feature_cache.clear()

    def _sample_feature(self, payload: str) -> np.ndarray:
        with self._cache_lock:
            cached = self._feature_cache.get(payload)
        if cached is not None:
            return cached

        feature = self.describe(load_image(payload))
        with self._cache_lock:
            if len(self._feature_cache) >= self.cache_size:
                self._feature_cache.pop(next(iter(self._feature_cache)))
            self._feature_cache[payload] = feature
        return feature
