"""
Core data models for the multi-model image classifier.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple


class ModelType(Enum):
    """Identity of the three classifiers compared side by side."""
    TRANSFER_LEARNING = "MobileNet CNN"
    BASELINE = "Color Histogram"
    REMOTE = "Nova Lite (Bedrock)"

    @property
    def description(self) -> str:
        """Human-readable description of how the classifier works."""
        return MODEL_DESCRIPTIONS[self]


MODEL_DESCRIPTIONS = {
    ModelType.TRANSFER_LEARNING: (
        "Uses PyTorch with MobileNet transfer learning. Fast and runs entirely on this machine."
    ),
    ModelType.BASELINE: "A baseline statistical model checking average color distributions.",
    ModelType.REMOTE: (
        "Uses Amazon Nova Lite on Bedrock. Accurate with reasoning capabilities, but requires API calls."
    ),
}


class TrainingState(Enum):
    """States of the training controller."""
    IDLE = "idle"
    VALIDATING = "validating"
    TRAINING = "training"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ClassDefinition:
    """A user-defined class label with its ordered example images."""
    id: str
    name: str
    samples: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate class definition after initialization."""
        if not self.id or not self.id.strip():
            raise ValueError("Class id cannot be empty")
        if not self.name or not self.name.strip():
            raise ValueError("Class name cannot be empty")
        if not isinstance(self.samples, tuple):
            object.__setattr__(self, "samples", tuple(self.samples))

    @property
    def sample_count(self) -> int:
        return len(self.samples)


@dataclass
class PredictionResult:
    """One classifier's answer for a query image, or the reason it has none."""
    model_type: ModelType
    class_name: Optional[str] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    error: Optional[str] = None  # Failure marker: name of the error kind
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate prediction result scores."""
        if self.confidence is not None:
            if not isinstance(self.confidence, (int, float)) or not (0.0 <= self.confidence <= 1.0):
                raise ValueError("Confidence must be a number between 0.0 and 1.0")
        if self.error is None and self.class_name is None:
            raise ValueError("A successful prediction must name a class")

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        model_type: ModelType,
        error: str,
        reasoning: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> 'PredictionResult':
        """
        Create a failure-shaped result with no class and no confidence.

        Args:
            model_type: Classifier that failed
            error: Error kind, usually the exception class name
            reasoning: Human-readable explanation of the failure

        Returns:
            PredictionResult marked as failed
        """
        return cls(
            model_type=model_type,
            class_name=None,
            confidence=None,
            reasoning=reasoning,
            error=error,
            metadata=metadata or {}
        )

    @classmethod
    def from_exception(cls, model_type: ModelType, exc: Exception) -> 'PredictionResult':
        """Create a failure result from an exception raised by a classifier."""
        return cls.failure(model_type, type(exc).__name__, str(exc) or type(exc).__name__)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the prediction result to a dictionary."""
        return {
            "model_name": self.model_type.value,
            "class_name": self.class_name,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "error": self.error,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ConfusionMatrixEntry:
    """Number of evaluated samples of class `actual` predicted as `predicted`."""
    actual: str
    predicted: str
    count: int


@dataclass
class TrainingMetrics:
    """Evaluation of a trained head over its own training samples."""
    accuracy: float
    total_samples: int
    confusion_matrix: List[ConfusionMatrixEntry] = field(default_factory=list)
    loss_history: List[float] = field(default_factory=list)

    def __post_init__(self):
        """Validate training metrics after initialization."""
        if not (0.0 <= self.accuracy <= 1.0):
            raise ValueError("Accuracy must be a number between 0.0 and 1.0")
        counted = sum(entry.count for entry in self.confusion_matrix)
        if counted != self.total_samples:
            raise ValueError(
                f"Confusion matrix counts ({counted}) must sum to total samples ({self.total_samples})"
            )

    def rows(self) -> Dict[str, Dict[str, int]]:
        """Get the confusion matrix as nested `actual -> predicted -> count` mappings."""
        table: Dict[str, Dict[str, int]] = defaultdict(dict)
        for entry in self.confusion_matrix:
            table[entry.actual][entry.predicted] = entry.count
        return dict(table)

    def per_class_accuracy(self) -> Dict[str, float]:
        """Get the fraction of correctly predicted samples for each actual class."""
        accuracies = {}
        for actual, predictions in self.rows().items():
            total = sum(predictions.values())
            accuracies[actual] = predictions.get(actual, 0) / total if total else 0.0
        return accuracies

    def to_dict(self) -> Dict[str, Any]:
        """Convert the metrics to a dictionary."""
        return {
            "accuracy": self.accuracy,
            "total_samples": self.total_samples,
            "confusion_matrix": [
                {"actual": e.actual, "predicted": e.predicted, "count": e.count}
                for e in self.confusion_matrix
            ],
            "loss_history": list(self.loss_history),
        }


@dataclass(frozen=True)
class TrainedModelState:
    """
    Parameters of a trained head and the class set it was trained on.

    Opaque to consumers. Replaced wholesale by each training run.
    """
    head: Any = field(repr=False, compare=False)
    class_ids: Tuple[str, ...]
    class_names: Tuple[str, ...]
    embedding_dim: int
    registry_revision: int
    metrics: TrainingMetrics
    trained_at: datetime = field(default_factory=datetime.now)

    @property
    def num_classes(self) -> int:
        return len(self.class_ids)


@dataclass
class TrainingRunResult:
    """Outcome of one training attempt, successful or not."""
    succeeded: bool
    state: TrainingState
    metrics: Optional[TrainingMetrics] = None
    error: Optional[Exception] = None
    invalid_class_ids: List[str] = field(default_factory=list)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert the run result to a dictionary."""
        return {
            "succeeded": self.succeeded,
            "state": self.state.value,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "error": type(self.error).__name__ if self.error is not None else None,
            "error_message": self.error_message,
            "invalid_class_ids": list(self.invalid_class_ids),
        }
