"""
Multi-model image classifier: a transfer-learning CNN, a color histogram
baseline and a Bedrock multimodal model compared side by side.
"""

from .models import (
    ModelType,
    TrainingState,
    ClassDefinition,
    PredictionResult,
    ConfusionMatrixEntry,
    TrainingMetrics,
    TrainedModelState,
    TrainingRunResult
)
from .class_registry import ClassRegistry, create_default_registry
from .feature_extractor import FeatureExtractor
from .transfer_classifier import TransferLearningClassifier
from .baseline_classifier import ColorHistogramClassifier
from .remote_classifier import BedrockImageClassifier
from .training_controller import TrainingController
from .inference_orchestrator import InferenceOrchestrator
from .pipeline import ClassificationPipeline, create_pipeline
from .exceptions import (
    ClassifierError,
    ConfigurationError,
    InvalidImageError,
    RegistryError,
    ClassNotFoundError,
    RegistryLockedError,
    ValidationError,
    ModelUnavailableError,
    ModelNotTrainedError,
    StaleModelError,
    InsufficientDataError,
    TrainingInProgressError,
    InferenceInProgressError,
    RemoteClassifierError,
    RemoteUnavailableError,
    RemoteTimeoutError,
    RemoteParseError
)

__version__ = "0.1.0"
__all__ = [
    "ModelType",
    "TrainingState",
    "ClassDefinition",
    "PredictionResult",
    "ConfusionMatrixEntry",
    "TrainingMetrics",
    "TrainedModelState",
    "TrainingRunResult",
    "ClassRegistry",
    "create_default_registry",
    "FeatureExtractor",
    "TransferLearningClassifier",
    "ColorHistogramClassifier",
    "BedrockImageClassifier",
    "TrainingController",
    "InferenceOrchestrator",
    "ClassificationPipeline",
    "create_pipeline",
    "ClassifierError",
    "ConfigurationError",
    "InvalidImageError",
    "RegistryError",
    "ClassNotFoundError",
    "RegistryLockedError",
    "ValidationError",
    "ModelUnavailableError",
    "ModelNotTrainedError",
    "StaleModelError",
    "InsufficientDataError",
    "TrainingInProgressError",
    "InferenceInProgressError",
    "RemoteClassifierError",
    "RemoteUnavailableError",
    "RemoteTimeoutError",
    "RemoteParseError"
]
