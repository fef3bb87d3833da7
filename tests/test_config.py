"""
Tests for environment-driven configuration.
"""

from multi_class_image_classifier.config import (
    ClassifierConfig,
    InferenceConfig,
    RemoteConfig,
    TrainingConfig
)
from ui.backend.config import APIConfig


class TestClassifierConfig:
    """Test cases for library configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("TRAINING_EPOCHS", "REMOTE_TIMEOUT", "INFERENCE_SETTLE_TIMEOUT", "REMOTE_MODEL_ID"):
            monkeypatch.delenv(name, raising=False)

        config = ClassifierConfig.from_env()

        assert config.training.min_samples_per_class == 3
        assert config.training.epochs == 20
        assert config.remote.model_id is None
        assert config.aws.default_nova_lite_model == "us.amazon.nova-lite-v1:0"
        assert config.feature_extractor.backbone == "mobilenet_v3_small"
        assert config.baseline.bins_per_channel == 8
        assert config.inference.settle_timeout == 90.0
        assert config.remote.timeout == 60.0

    def test_training_from_env(self, monkeypatch):
        monkeypatch.setenv("TRAINING_EPOCHS", "5")
        monkeypatch.setenv("TRAINING_LEARNING_RATE", "0.01")

        config = TrainingConfig.from_env()

        assert config.epochs == 5
        assert config.learning_rate == 0.01

    def test_remote_from_env(self, monkeypatch):
        monkeypatch.setenv("REMOTE_CLASSIFIER_ENABLED", "false")
        monkeypatch.setenv("REMOTE_MODEL_ID", "us.amazon.nova-pro-v1:0")
        monkeypatch.setenv("REMOTE_TIMEOUT", "12.5")

        config = RemoteConfig.from_env()

        assert config.enabled is False
        assert config.model_id == "us.amazon.nova-pro-v1:0"
        assert config.timeout == 12.5

    def test_settle_timeout_can_be_disabled(self, monkeypatch):
        monkeypatch.setenv("INFERENCE_SETTLE_TIMEOUT", "")

        assert InferenceConfig.from_env().settle_timeout is None


class TestAPIConfig:
    """Test cases for backend configuration."""

    def test_cors_origins_from_env(self, monkeypatch):
        monkeypatch.setenv("API_CORS_ORIGINS", "http://a.example, http://b.example")

        config = APIConfig.from_env()

        assert config.cors_origins == ["http://a.example", "http://b.example"]

    def test_max_payload_chars(self):
        assert APIConfig(max_image_size_mb=3).max_payload_chars > 3 * 1024 * 1024
