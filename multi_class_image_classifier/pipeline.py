"""
Wiring of the registry, classifiers, training controller and orchestrator.
"""

from dataclasses import dataclass
from typing import Optional
from .class_registry import ClassRegistry, create_default_registry
from .config import ClassifierConfig
from .feature_extractor import FeatureExtractor
from .transfer_classifier import TransferLearningClassifier
from .baseline_classifier import ColorHistogramClassifier
from .remote_classifier import BedrockImageClassifier
from .training_controller import TrainingController
from .inference_orchestrator import InferenceOrchestrator
from .services.interfaces import EmbeddingModel, ImageClassifier


@dataclass
class ClassificationPipeline:
    """Explicitly owned state of one classification session."""
    registry: ClassRegistry
    feature_extractor: EmbeddingModel
    controller: TrainingController
    baseline: ColorHistogramClassifier
    remote: ImageClassifier
    orchestrator: InferenceOrchestrator

    def shutdown(self) -> None:
        self.orchestrator.shutdown()


def create_pipeline(
    config: Optional[ClassifierConfig] = None,
    registry: Optional[ClassRegistry] = None,
    feature_extractor: Optional[EmbeddingModel] = None,
    remote: Optional[ImageClassifier] = None,
    preload: bool = True
) -> ClassificationPipeline:
    """
    Create a pipeline with common configuration.

    Args:
        config: Library configuration (defaults to the global config)
        registry: Class registry; a registry with two empty classes is created if omitted
        feature_extractor: Embedding model; a torchvision backbone is used if omitted
        remote: Remote classifier; the Bedrock classifier is used if omitted
        preload: Start loading the feature extractor weights in the background

    Returns:
        Configured ClassificationPipeline
    """
    if config is None:
        from .config import config as classifier_config
        config = classifier_config

    if registry is None:
        registry = create_default_registry(config.training.min_samples_per_class)

    if feature_extractor is None:
        feature_extractor = FeatureExtractor(config.feature_extractor)
        if preload:
            feature_extractor.start_background_load()

    if remote is None:
        remote = BedrockImageClassifier(config.remote, config.aws, config.retry)

    controller = TrainingController(
        registry, TransferLearningClassifier(feature_extractor, config.training), config.training
    )
    baseline = ColorHistogramClassifier(config.baseline)
    orchestrator = InferenceOrchestrator(registry, [controller, baseline, remote], config.inference)

    return ClassificationPipeline(
        registry=registry,
        feature_extractor=feature_extractor,
        controller=controller,
        baseline=baseline,
        remote=remote,
        orchestrator=orchestrator,
    )
