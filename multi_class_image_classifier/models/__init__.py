"""
Data models for the multi-model image classifier.
"""

from .data_models import (
    ModelType,
    MODEL_DESCRIPTIONS,
    TrainingState,
    ClassDefinition,
    PredictionResult,
    ConfusionMatrixEntry,
    TrainingMetrics,
    TrainedModelState,
    TrainingRunResult
)

__all__ = [
    "ModelType",
    "MODEL_DESCRIPTIONS",
    "TrainingState",
    "ClassDefinition",
    "PredictionResult",
    "ConfusionMatrixEntry",
    "TrainingMetrics",
    "TrainedModelState",
    "TrainingRunResult"
]
