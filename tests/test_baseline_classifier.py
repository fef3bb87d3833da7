"""
Tests for the ColorHistogramClassifier class.
"""

import logging
import numpy as np
import pytest
from PIL import Image

from multi_class_image_classifier import ColorHistogramClassifier, ModelType
from multi_class_image_classifier.config import BaselineConfig
from multi_class_image_classifier.models import ClassDefinition
from multi_class_image_classifier.exceptions import ConfigurationError, InsufficientDataError, InvalidImageError
from tests.helpers import make_cat_dog_registry, solid_image_payload, split_image_payload


class TestColorHistogramClassifier:
    """Test cases for ColorHistogramClassifier class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.classifier = ColorHistogramClassifier(BaselineConfig(bins_per_channel=8, thumbnail_size=32))
        self.classes = make_cat_dog_registry().list_classes()

    def test_describe_is_normalized_per_channel(self):
        feature = self.classifier.describe(Image.new("RGB", (50, 20), (255, 128, 0)))

        assert feature.shape == (24,)
        for channel in range(3):
            assert feature[channel * 8:(channel + 1) * 8].sum() == pytest.approx(1.0)

    def test_classify_red_query_as_cat(self):
        result = self.classifier.classify(solid_image_payload((205, 30, 35)), self.classes)

        assert result.model_type == ModelType.BASELINE
        assert result.succeeded
        assert result.class_name == "Cat"
        assert 0.0 <= result.confidence <= 1.0

    def test_classify_blue_query_as_dog(self):
        result = self.classifier.classify(solid_image_payload((30, 50, 210)), self.classes)

        assert result.class_name == "Dog"

    def test_identical_image_has_full_confidence(self):
        """Test a query matching a single-sample class exactly is at distance zero."""
        payload = solid_image_payload((0, 255, 0))
        classes = [
            ClassDefinition(id="g", name="Green", samples=(payload,)),
            ClassDefinition(id="b", name="Black", samples=(solid_image_payload((0, 0, 0)),)),
        ]

        result = self.classifier.classify(payload, classes)

        assert result.class_name == "Green"
        assert result.confidence == pytest.approx(1.0)
        assert result.metadata["distance"] == pytest.approx(0.0)

    def test_confidence_is_bounded(self):
        """Test the most distant possible pair still yields a valid confidence."""
        classes = [ClassDefinition(id="w", name="White", samples=(solid_image_payload((255, 255, 255)),))]

        result = self.classifier.classify(solid_image_payload((0, 0, 0)), classes)

        assert result.class_name == "White"
        assert result.confidence == pytest.approx(0.0)
        assert result.metadata["distance"] == pytest.approx(self.classifier.max_distance)

    def test_ties_go_to_first_class(self):
        payload = split_image_payload((255, 0, 0), (0, 0, 255))
        classes = [
            ClassDefinition(id="a", name="First", samples=(solid_image_payload((255, 0, 0)),)),
            ClassDefinition(id="b", name="Second", samples=(solid_image_payload((255, 0, 0)),)),
        ]

        result = self.classifier.classify(payload, classes)

        assert result.class_name == "First"

    def test_deterministic(self):
        query = solid_image_payload((120, 60, 90))

        first = self.classifier.classify(query, self.classes)
        self.classifier.clear_cache()
        second = self.classifier.classify(query, self.classes)

        assert first.class_name == second.class_name
        assert first.confidence == second.confidence

    def test_class_without_samples(self):
        classes = list(self.classes) + [ClassDefinition(id="e", name="Empty")]

        with pytest.raises(InsufficientDataError, match="Empty"):
            self.classifier.classify(solid_image_payload((1, 2, 3)), classes)

    def test_no_classes(self):
        with pytest.raises(InsufficientDataError):
            self.classifier.classify(solid_image_payload((1, 2, 3)), [])

    def test_invalid_query(self):
        with pytest.raises(InvalidImageError):
            self.classifier.classify("%%%", self.classes)

    def test_class_descriptors_shape(self):
        descriptors = self.classifier.class_descriptors(self.classes)

        assert descriptors.shape == (2, 24)
        assert np.all(descriptors >= 0.0)

    def test_config_validation(self):
        with pytest.raises(ConfigurationError, match="bins_per_channel"):
            ColorHistogramClassifier(BaselineConfig(bins_per_channel=0))
        with pytest.raises(ConfigurationError, match="thumbnail_size"):
            ColorHistogramClassifier(BaselineConfig(thumbnail_size=0))

    def test_logs_nearest_class(self, caplog):
        caplog.set_level(logging.DEBUG, logger="multi_class_image_classifier.baseline_classifier")

        self.classifier.classify(solid_image_payload((210, 35, 35)), self.classes)

        assert "Nearest histogram: 'Cat' at distance" in caplog.text

    def test_feature_cache_is_bounded(self):
        classifier = ColorHistogramClassifier(BaselineConfig(), cache_size=2)

        classifier.class_descriptors(self.classes)

        assert len(classifier._feature_cache) == 2
