"""
Fan-out/fan-in of one query image across all classifiers.

Each classifier runs in its own worker thread against the same class
snapshot. Every slot is wrapped on its own, so one failing classifier turns
into a failure-shaped result for that slot and never affects the others.

Single-flight policy: a second infer() while one is outstanding is rejected
with InferenceInProgressError. It is not queued. A slot that outlives the
settle timeout is reported as failed but keeps the call outstanding until it
actually finishes, so no two calls ever run a classifier at the same time.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import List, Optional, Sequence
from .class_registry import ClassRegistry
from .config import InferenceConfig
from .models.data_models import ClassDefinition, PredictionResult
from .services.interfaces import ImageClassifier
from .exceptions import ClassifierError, InferenceInProgressError


logger = logging.getLogger(__name__)


class InferenceOrchestrator:
    """Runs the transfer-learning, baseline and remote classifiers concurrently."""

    def __init__(
        self,
        registry: ClassRegistry,
        classifiers: Sequence[ImageClassifier],
        config: Optional[InferenceConfig] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Class registry snapshotted at the start of each call
            classifiers: Classifiers in result order (transfer-learning, baseline, remote)
            config: Inference configuration (defaults to the global config)
        """
        if not classifiers:
            raise ValueError("At least one classifier is required")
        for classifier in classifiers:
            if not isinstance(classifier, ImageClassifier):
                raise TypeError(f"{classifier!r} does not implement classify(image, classes)")

        if config is None:
            from .config import config as classifier_config
            config = classifier_config.inference

        self.registry = registry
        self.classifiers = list(classifiers)
        self.config = config
        self._flight_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=len(self.classifiers), thread_name_prefix="inference"
        )

    @property
    def is_predicting(self) -> bool:
        """True while an infer() call is outstanding."""
        return self._flight_lock.locked()

    def infer(self, image: str) -> List[PredictionResult]:
        """
        Classify a query image with every classifier.

        Args:
            image: Base64 encoded query image

        Returns:
            One PredictionResult per classifier, in constructor order

        Raises:
            InferenceInProgressError: If another infer() call is still running
        """
        if not self._flight_lock.acquire(blocking=False):
            raise InferenceInProgressError("A prediction is already in progress")

        futures: List[Future] = []
        try:
            started = time.monotonic()
            classes = self.registry.list_classes()
            futures = [
                self._executor.submit(self._run_slot, classifier, image, classes)
                for classifier in self.classifiers
            ]
            wait(futures, timeout=self.config.settle_timeout)

            results = [
                self._settle(classifier, future)
                for classifier, future in zip(self.classifiers, futures)
            ]

            failed = sum(1 for r in results if not r.succeeded)
            logger.info(
                f"Inference finished in {time.monotonic() - started:.2f}s "
                f"({len(results) - failed} succeeded, {failed} failed)"
            )
            return results
        finally:
            self._release_when_settled(futures)

    def _release_when_settled(self, futures: Sequence[Future]) -> None:
        """Release the single-flight lock once every slot of the call has finished running."""
        pending = [future for future in futures if not future.done()]
        if not pending:
            self._flight_lock.release()
            return

        logger.warning(f"{len(pending)} slot(s) still running; new predictions are refused until they finish")
        remaining = [len(pending)]
        counter_lock = threading.Lock()

        def on_done(_future: Future) -> None:
            with counter_lock:
                remaining[0] -= 1
                settled = remaining[0] == 0
            if settled:
                logger.info("Late inference slots finished")
                self._flight_lock.release()

        for future in pending:
            future.add_done_callback(on_done)

    @staticmethod
    def _run_slot(
        classifier: ImageClassifier,
        image: str,
        classes: Sequence[ClassDefinition]
    ) -> PredictionResult:
        try:
            return classifier.classify(image, classes)
        except ClassifierError as e:
            logger.warning(f"{classifier.model_type.value} failed: {e}")
            return PredictionResult.from_exception(classifier.model_type, e)
        except Exception as e:
            logger.exception(f"Unexpected error in {classifier.model_type.value}")
            return PredictionResult.failure(
                classifier.model_type,
                type(e).__name__,
                f"Unexpected error: {e}"
            )

    def _settle(self, classifier: ImageClassifier, future: Future) -> PredictionResult:
        if not future.done():
            logger.warning(f"{classifier.model_type.value} did not settle in time")
            return PredictionResult.failure(
                classifier.model_type,
                "TimeoutError",
                f"Classifier did not finish within {self.config.settle_timeout} seconds"
            )
        return future.result()

    def shutdown(self) -> None:
        """Release the worker threads."""
        self._executor.shutdown(wait=False)
