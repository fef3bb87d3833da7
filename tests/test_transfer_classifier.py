"""
Tests for the TransferLearningClassifier class.
"""

import pytest
import torch
from PIL import Image

from multi_class_image_classifier.transfer_classifier import (
    ClassificationHead,
    TransferLearningClassifier
)
from multi_class_image_classifier.exceptions import ConfigurationError, ModelNotTrainedError, ValidationError
from tests.helpers import FakeFeatureExtractor, make_cat_dog_registry, make_training_config


class TestTransferLearningClassifier:
    """Test cases for TransferLearningClassifier class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = FakeFeatureExtractor()
        self.classifier = TransferLearningClassifier(self.extractor, make_training_config())
        self.registry = make_cat_dog_registry()
        self.classes = self.registry.list_classes()

    def test_config_validation(self):
        with pytest.raises(ConfigurationError, match="epochs"):
            TransferLearningClassifier(self.extractor, make_training_config(epochs=0))
        with pytest.raises(ConfigurationError, match="batch_size"):
            TransferLearningClassifier(self.extractor, make_training_config(batch_size=0))

    def test_training_leaves_global_rng_untouched(self):
        torch.manual_seed(123)
        expected = torch.rand(3)
        torch.manual_seed(123)

        self.classifier.train(self.classes)

        assert torch.equal(torch.rand(3), expected)

    def test_build_dataset(self):
        embeddings, labels = self.classifier.build_dataset(self.classes)

        assert embeddings.shape == (6, 48)
        assert labels.tolist() == [0, 0, 0, 1, 1, 1]

    def test_build_dataset_without_samples(self):
        registry = make_cat_dog_registry(cat_samples=0, dog_samples=0)

        with pytest.raises(ValidationError):
            self.classifier.build_dataset(registry.list_classes())

    def test_train_cat_dog(self):
        """Test the 3+3 Cat/Dog scenario produces a complete confusion matrix."""
        state = self.classifier.train(self.classes, registry_revision=self.registry.revision)
        metrics = state.metrics

        assert state.class_names == ("Cat", "Dog")
        assert state.num_classes == 2
        assert state.embedding_dim == 48
        assert state.registry_revision == self.registry.revision

        assert metrics.total_samples == 6
        rows = metrics.rows()
        assert set(rows) == {"Cat", "Dog"}
        assert sum(rows["Cat"].values()) == 3
        assert sum(rows["Dog"].values()) == 3
        assert 0.0 <= metrics.accuracy <= 1.0
        assert metrics.accuracy == 1.0
        assert len(metrics.loss_history) == 50

    def test_train_reports_progress(self):
        fractions = []

        self.classifier.train(self.classes, progress_callback=fractions.append)

        assert len(fractions) == 50
        assert fractions == sorted(fractions)
        assert fractions[-1] == 1.0
        assert all(0.0 < f <= 1.0 for f in fractions)

    def test_training_is_reproducible(self):
        first = self.classifier.train(self.classes)
        second = self.classifier.train(self.classes)

        assert first.metrics.loss_history == pytest.approx(second.metrics.loss_history)

    def test_predict(self):
        state = self.classifier.train(self.classes)

        index, confidence = self.classifier.predict(state, Image.new("RGB", (32, 32), (210, 35, 35)))

        assert state.class_names[index] == "Cat"
        assert 0.5 < confidence <= 1.0

    def test_predict_without_model(self):
        with pytest.raises(ModelNotTrainedError):
            self.classifier.predict(None, Image.new("RGB", (8, 8)))

    def test_train_requires_classes(self):
        with pytest.raises(ValidationError):
            self.classifier.train([])


class TestClassificationHead:
    """Test cases for the head network."""

    def test_output_shape(self):
        import torch

        head = ClassificationHead(embedding_dim=10, num_classes=3, hidden_units=5)
        assert head(torch.zeros(4, 10)).shape == (4, 3)

    def test_linear_head(self):
        import torch

        head = ClassificationHead(embedding_dim=10, num_classes=2, hidden_units=0)
        assert head(torch.zeros(1, 10)).shape == (1, 2)
