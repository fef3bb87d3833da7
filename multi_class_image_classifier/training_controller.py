"""
Training controller: owns the single training run and the trained model.

State machine:
    IDLE -> VALIDATING -> TRAINING -> READY          (success)
    IDLE -> VALIDATING -> IDLE                       (not enough samples)
    IDLE -> VALIDATING -> TRAINING -> FAILED -> IDLE (training error)

A failed run never destroys a working model: the previous model and the
READY state come back. Editing classes after READY does not reset the state,
but the model is reported stale and refuses to predict until retrained.
While a run validates or trains, no model is served."""

import logging
import threading
from typing import Callable, Optional, Sequence
from .class_registry import ClassRegistry
from .config import TrainingConfig
from .image_utils import load_image
from .transfer_classifier import TransferLearningClassifier
from .models.data_models import (
    ClassDefinition,
    ModelType,
    PredictionResult,
    TrainedModelState,
    TrainingMetrics,
    TrainingRunResult,
    TrainingState
)
from .exceptions import (
    ClassifierError,
    ModelNotTrainedError,
    ModelUnavailableError,
    StaleModelError,
    TrainingInProgressError,
    ValidationError
)


logger = logging.getLogger(__name__)


class TrainingController:
    """
    Runs training over the class registry and publishes the trained model.

    Also serves as the transfer-learning slot of the inference fan-out, since
    it is the only holder of the trained model.
    """

    model_type = ModelType.TRANSFER_LEARNING

    def __init__(
        self,
        registry: ClassRegistry,
        classifier: TransferLearningClassifier,
        config: Optional[TrainingConfig] = None
    ):
        """
        Initialize the controller.

        Args:
            registry: Class registry to train from
            classifier: Transfer-learning classifier that fits the head
            config: Training configuration (defaults to the classifier's config)
        """
        self.registry = registry
        self.classifier = classifier
        self.config = config or classifier.config

        self._state = TrainingState.IDLE
        self._model: Optional[TrainedModelState] = None
        self._progress = 0.0
        self._last_error: Optional[ClassifierError] = None
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()

    @property
    def state(self) -> TrainingState:
        return self._state

    @property
    def progress(self) -> float:
        """Fraction of the current or last run completed, in [0, 1]."""
        return self._progress

    @property
    def is_training(self) -> bool:
        return self._is_running(self._state)

    @staticmethod
    def _is_running(state: TrainingState) -> bool:
        return state in (TrainingState.VALIDATING, TrainingState.TRAINING)

    @property
    def metrics(self) -> Optional[TrainingMetrics]:
        """Metrics of the published model, if any."""
        model = self._model
        return model.metrics if model is not None else None

    @property
    def last_error(self) -> Optional[ClassifierError]:
        return self._last_error

    @property
    def is_model_ready(self) -> bool:
        """True exactly when current_model() would return a model."""
        try:
            self.current_model()
        except ModelNotTrainedError:
            return False
        return True

    def current_model(self) -> TrainedModelState:
        """
        Get the published model if it is valid for prediction.

        Raises:
            ModelNotTrainedError: If no model is trained or training is running
            StaleModelError: If the classes changed after training
        """
        with self._lock:
            model = self._model
            state = self._state

        if self._is_running(state):
            raise ModelNotTrainedError("Model is being retrained")
        if model is None or state != TrainingState.READY:
            raise ModelNotTrainedError("Model has not been trained")
        if model.registry_revision != self.registry.revision:
            raise StaleModelError("Classes changed since the model was trained; retrain before predicting")
        return model

    def train(self, progress_callback: Optional[Callable[[float], None]] = None) -> TrainingRunResult:
        """
        Validate the registry and train a new model.

        Never raises: every failure is reported in the returned result.

        Args:
            progress_callback: Called with a fraction in [0, 1] after each epoch

        Returns:
            TrainingRunResult describing the outcome
        """
        if not self._run_lock.acquire(blocking=False):
            error = TrainingInProgressError("A training run is already in progress")
            return TrainingRunResult(succeeded=False, state=self._state, error=error)

        try:
            return self._run(progress_callback)
        finally:
            self._run_lock.release()

    def _run(self, progress_callback: Optional[Callable[[float], None]]) -> TrainingRunResult:
        with self._lock:
            previous_model = self._model
            self._state = TrainingState.VALIDATING

        try:
            with self.registry.frozen():
                revision, classes = self.registry.snapshot()
                self._validate(classes)
                self._ensure_extractor_ready()

                with self._lock:
                    self._state = TrainingState.TRAINING
                    self._model = None
                    self._progress = 0.0
                logger.info(f"Training started on {len(classes)} classes (revision {revision})")

                model = self.classifier.train(
                    classes,
                    progress_callback=lambda fraction: self._report_progress(fraction, progress_callback),
                    registry_revision=revision
                )

        except ValidationError as e:
            logger.warning(f"Training rejected: {e}")
            self._restore(previous_model, e)
            return TrainingRunResult(
                succeeded=False,
                state=self._state,
                error=e,
                invalid_class_ids=e.invalid_class_ids
            )
        except ClassifierError as e:
            logger.error(f"Training failed: {e}")
            return self._fail(previous_model, e)
        except Exception as e:
            logger.exception("Unexpected error during training")
            return self._fail(previous_model, ClassifierError(f"Training failed: {e}"))

        with self._lock:
            self._model = model
            self._state = TrainingState.READY
            self._progress = 1.0
            self._last_error = None

        return TrainingRunResult(succeeded=True, state=TrainingState.READY, metrics=model.metrics)

    def _validate(self, classes: Sequence[ClassDefinition]) -> None:
        if not classes:
            raise ValidationError("At least one class is required for training")

        minimum = self.config.min_samples_per_class
        invalid = [c for c in classes if c.sample_count < minimum]
        if invalid:
            names = ", ".join(f"'{c.name}' ({c.sample_count})" for c in invalid)
            raise ValidationError(
                f"Each class needs at least {minimum} samples: {names}",
                invalid_class_ids=[c.id for c in invalid]
            )

    def _ensure_extractor_ready(self) -> None:
        if not self.classifier.feature_extractor.wait_until_ready():
            raise ModelUnavailableError("Feature extractor is still loading")

    def _report_progress(self, fraction: float, callback: Optional[Callable[[float], None]]) -> None:
        fraction = min(max(fraction, 0.0), 1.0)
        self._progress = fraction
        if callback is not None:
            callback(fraction)

    def _fail(self, previous_model: Optional[TrainedModelState], error: ClassifierError) -> TrainingRunResult:
        with self._lock:
            self._state = TrainingState.FAILED
        self._restore(previous_model, error)
        return TrainingRunResult(succeeded=False, state=TrainingState.FAILED, error=error)

    def _restore(self, previous_model: Optional[TrainedModelState], error: ClassifierError) -> None:
        with self._lock:
            self._model = previous_model
            self._state = TrainingState.READY if previous_model is not None else TrainingState.IDLE
            self._last_error = error

    def invalidate(self) -> None:
        """Drop the published model and return to IDLE."""
        with self._lock:
            self._model = None
            self._state = TrainingState.IDLE
            self._progress = 0.0

    def classify(self, image: str, classes: Sequence[ClassDefinition]) -> PredictionResult:
        """
        Predict the class of a query image with the trained head.

        Args:
            image: Base64 encoded query image
            classes: Current class snapshot, used to resolve the label

        Raises:
            ModelNotTrainedError: If no valid model is available
            StaleModelError: If the predicted class no longer exists
        """
        model = self.current_model()
        index, confidence = self.classifier.predict(model, load_image(image))

        class_id = model.class_ids[index]
        current = {c.id: c for c in classes}
        if class_id not in current:
            raise StaleModelError(f"Predicted class {model.class_names[index]!r} no longer exists")

        return PredictionResult(
            model_type=self.model_type,
            class_name=current[class_id].name,
            confidence=confidence,
            metadata={"trained_at": model.trained_at.isoformat()}
        )
