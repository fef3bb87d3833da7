"""
Shared fixtures for the image classifier tests.
"""

import numpy as np
from PIL import Image

from multi_class_image_classifier import ClassRegistry, ModelType, PredictionResult
from multi_class_image_classifier.config import (
    AWSConfig,
    BaselineConfig,
    ClassifierConfig,
    FeatureExtractorConfig,
    InferenceConfig,
    RemoteConfig,
    RetryConfig,
    TrainingConfig
)
from multi_class_image_classifier.image_utils import encode_image


CAT_COLORS = [(200, 30, 30), (220, 45, 25), (190, 20, 50)]
DOG_COLORS = [(30, 40, 200), (25, 60, 220), (45, 30, 190)]


def solid_image_payload(color, size=(32, 32), image_format="PNG") -> str:
    """Create a base64 payload of a single-color image."""
    return encode_image(Image.new("RGB", size, color), image_format)


def split_image_payload(left_color, right_color, size=(32, 32)) -> str:
    """Create a base64 payload whose left and right halves have different colors."""
    image = Image.new("RGB", size, left_color)
    image.paste(Image.new("RGB", (size[0] // 2, size[1]), right_color), (size[0] // 2, 0))
    return encode_image(image)


def make_training_config(**overrides) -> TrainingConfig:
    """Training settings small and aggressive enough for tiny synthetic datasets."""
    settings = dict(min_samples_per_class=3, epochs=50, batch_size=8, learning_rate=0.05, hidden_units=16, seed=7)
    settings.update(overrides)
    return TrainingConfig(**settings)


def make_config(**training_overrides) -> ClassifierConfig:
    """Library configuration for tests: no remote calls, small training runs."""
    return ClassifierConfig(
        aws=AWSConfig(),
        retry=RetryConfig(),
        remote=RemoteConfig(enabled=False, timeout=5.0),
        feature_extractor=FeatureExtractorConfig(),
        training=make_training_config(**training_overrides),
        baseline=BaselineConfig(),
        inference=InferenceConfig(settle_timeout=10.0),
    )


def make_cat_dog_registry(cat_samples: int = 3, dog_samples: int = 3) -> ClassRegistry:
    """Registry with a red "Cat" class and a blue "Dog" class."""
    registry = ClassRegistry(min_samples_per_class=3)
    cat_id = registry.add_class("Cat")
    dog_id = registry.add_class("Dog")
    for i in range(cat_samples):
        registry.add_sample(cat_id, solid_image_payload(CAT_COLORS[i % len(CAT_COLORS)]))
    for i in range(dog_samples):
        registry.add_sample(dog_id, solid_image_payload(DOG_COLORS[i % len(DOG_COLORS)]))
    return registry


class FakeFeatureExtractor:
    """Deterministic embedding: the pixels of a 4x4 downsample, scaled to [0, 1]."""

    def __init__(self, ready: bool = True):
        self.ready = ready
        self.embedded = 0

    @property
    def is_ready(self) -> bool:
        return self.ready

    def wait_until_ready(self, timeout=None) -> bool:
        return self.ready

    def embed(self, image):
        return self.embed_batch([image])[0]

    def embed_batch(self, images):
        self.embedded += len(images)
        return np.stack([
            np.asarray(image.convert("RGB").resize((4, 4)), dtype=np.float32).reshape(-1) / 255.0
            for image in images
        ])


class StaticClassifier:
    """Classifier stub that always answers with the first class."""

    def __init__(self, model_type: ModelType, confidence: float = 0.9):
        self.model_type = model_type
        self.confidence = confidence
        self.seen_classes = None

    def classify(self, image, classes):
        self.seen_classes = classes
        return PredictionResult(
            model_type=self.model_type,
            class_name=classes[0].name,
            confidence=self.confidence
        )
