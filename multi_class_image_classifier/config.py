"""
Configuration for the multi-model image classifier library.
Independent of UI backend configuration.
"""

import os
from typing import Optional
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AWSConfig:
    """AWS-related configuration settings."""
    bedrock_region: str = "us-west-2"

    # Multimodal model used by the remote classifier
    default_nova_lite_model: str = "us.amazon.nova-lite-v1:0"

    @classmethod
    def from_env(cls) -> 'AWSConfig':
        """Create AWS config from environment variables."""
        return cls(
            bedrock_region=os.getenv('AWS_BEDROCK_REGION', cls.bedrock_region),
            default_nova_lite_model=os.getenv('AWS_NOVA_LITE_MODEL', cls.default_nova_lite_model),
        )


@dataclass
class RetryConfig:
    """Retry and timeout configuration for AWS services."""
    max_attempts: int = 2
    mode: str = "standard"
    read_timeout: int = 20
    connect_timeout: int = 5

    @classmethod
    def from_env(cls) -> 'RetryConfig':
        """Create retry config from environment variables."""
        return cls(
            max_attempts=int(os.getenv('AWS_RETRY_MAX_ATTEMPTS', cls.max_attempts)),
            mode=os.getenv('AWS_RETRY_MODE', cls.mode),
            read_timeout=int(os.getenv('AWS_READ_TIMEOUT', cls.read_timeout)),
            connect_timeout=int(os.getenv('AWS_CONNECT_TIMEOUT', cls.connect_timeout)),
        )


@dataclass
class RemoteConfig:
    """Configuration for the remote multimodal classifier."""
    enabled: bool = True
    model_id: Optional[str] = None  # Falls back to AWSConfig.default_nova_lite_model

    # Request shaping
    max_exemplars_per_class: int = 3
    max_image_size: int = 512
    image_quality: int = 85

    # Model parameters
    max_tokens: int = 500
    temperature: float = 0.1
    top_p: float = 0.9

    # Wall-clock bound on a single classification call, in seconds
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> 'RemoteConfig':
        """Create remote classifier config from environment variables."""
        return cls(
            enabled=_env_bool('REMOTE_CLASSIFIER_ENABLED', cls.enabled),
            model_id=os.getenv('REMOTE_MODEL_ID', cls.model_id),
            max_exemplars_per_class=int(os.getenv('REMOTE_MAX_EXEMPLARS_PER_CLASS', cls.max_exemplars_per_class)),
            max_image_size=int(os.getenv('REMOTE_MAX_IMAGE_SIZE', cls.max_image_size)),
            image_quality=int(os.getenv('REMOTE_IMAGE_QUALITY', cls.image_quality)),
            max_tokens=int(os.getenv('REMOTE_MAX_TOKENS', cls.max_tokens)),
            temperature=float(os.getenv('REMOTE_TEMPERATURE', cls.temperature)),
            top_p=float(os.getenv('REMOTE_TOP_P', cls.top_p)),
            timeout=float(os.getenv('REMOTE_TIMEOUT', cls.timeout)),
        )


@dataclass
class FeatureExtractorConfig:
    """Configuration for the pretrained feature extractor."""
    backbone: str = "mobilenet_v3_small"
    weights_path: Optional[str] = None  # Local state dict; torchvision weights are downloaded otherwise
    image_size: int = 224
    load_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> 'FeatureExtractorConfig':
        """Create feature extractor config from environment variables."""
        return cls(
            backbone=os.getenv('FEATURE_EXTRACTOR_BACKBONE', cls.backbone),
            weights_path=os.getenv('FEATURE_EXTRACTOR_WEIGHTS_PATH', cls.weights_path),
            image_size=int(os.getenv('FEATURE_EXTRACTOR_IMAGE_SIZE', cls.image_size)),
            load_timeout=float(os.getenv('FEATURE_EXTRACTOR_LOAD_TIMEOUT', cls.load_timeout)),
        )


@dataclass
class TrainingConfig:
    """Configuration for training the transfer-learning head."""
    min_samples_per_class: int = 3
    epochs: int = 20
    batch_size: int = 16
    learning_rate: float = 0.001
    hidden_units: int = 100
    seed: int = 42

    @classmethod
    def from_env(cls) -> 'TrainingConfig':
        """Create training config from environment variables."""
        return cls(
            min_samples_per_class=int(os.getenv('TRAINING_MIN_SAMPLES_PER_CLASS', cls.min_samples_per_class)),
            epochs=int(os.getenv('TRAINING_EPOCHS', cls.epochs)),
            batch_size=int(os.getenv('TRAINING_BATCH_SIZE', cls.batch_size)),
            learning_rate=float(os.getenv('TRAINING_LEARNING_RATE', cls.learning_rate)),
            hidden_units=int(os.getenv('TRAINING_HIDDEN_UNITS', cls.hidden_units)),
            seed=int(os.getenv('TRAINING_SEED', cls.seed)),
        )


@dataclass
class BaselineConfig:
    """Configuration for the color histogram baseline."""
    bins_per_channel: int = 8
    thumbnail_size: int = 64

    @classmethod
    def from_env(cls) -> 'BaselineConfig':
        """Create baseline config from environment variables."""
        return cls(
            bins_per_channel=int(os.getenv('BASELINE_BINS_PER_CHANNEL', cls.bins_per_channel)),
            thumbnail_size=int(os.getenv('BASELINE_THUMBNAIL_SIZE', cls.thumbnail_size)),
        )


@dataclass
class InferenceConfig:
    """Configuration for the inference fan-out."""
    # Upper bound for a slot to settle; None waits for every slot
    settle_timeout: Optional[float] = 90.0

    @classmethod
    def from_env(cls) -> 'InferenceConfig':
        """Create inference config from environment variables."""
        raw = os.getenv('INFERENCE_SETTLE_TIMEOUT')
        if raw is None:
            return cls()
        return cls(settle_timeout=float(raw) if raw.strip() else None)


@dataclass
class ClassifierConfig:
    """Configuration for the image classifier library."""
    aws: AWSConfig
    retry: RetryConfig
    remote: RemoteConfig
    feature_extractor: FeatureExtractorConfig
    training: TrainingConfig
    baseline: BaselineConfig
    inference: InferenceConfig

    @classmethod
    def from_env(cls) -> 'ClassifierConfig':
        """Create classifier config from environment variables."""
        return cls(
            aws=AWSConfig.from_env(),
            retry=RetryConfig.from_env(),
            remote=RemoteConfig.from_env(),
            feature_extractor=FeatureExtractorConfig.from_env(),
            training=TrainingConfig.from_env(),
            baseline=BaselineConfig.from_env(),
            inference=InferenceConfig.from_env(),
        )


# Global configuration instance
config = ClassifierConfig.from_env()
