"""
Transfer-learning classifier: a small trainable head on frozen CNN embeddings.

Training embeds every sample once, fits the head for a fixed number of epochs
and evaluates it on the same samples it was trained on. There is no held-out
split, so the reported accuracy is training accuracy.
"""

import logging
import math
from collections import Counter
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np
import torch
from torch import nn
from PIL import Image
from .config import TrainingConfig
from .image_utils import load_image
from .models.data_models import (
    ClassDefinition,
    ConfusionMatrixEntry,
    TrainedModelState,
    TrainingMetrics
)
from .services.interfaces import EmbeddingModel
from .exceptions import ConfigurationError, ModelNotTrainedError, ValidationError


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class ClassificationHead(nn.Module):
    """Maps an embedding to one score per class."""

    def __init__(self, embedding_dim: int, num_classes: int, hidden_units: int = 100):
        super().__init__()
        if hidden_units > 0:
            self.layers = nn.Sequential(
                nn.Linear(embedding_dim, hidden_units),
                nn.ReLU(),
                nn.Linear(hidden_units, num_classes),
            )
        else:
            self.layers = nn.Linear(embedding_dim, num_classes)

    def forward(self, embeddings: torch.Tensor) -> torch.Tensor:
        return self.layers(embeddings)


class TransferLearningClassifier:
    """
    Trains and runs the classification head.

    The classifier itself is stateless between runs: train() returns a
    TrainedModelState and predict() takes one, so ownership of the trained
    model stays with the caller.
    """

    def __init__(self, feature_extractor: EmbeddingModel, config: Optional[TrainingConfig] = None):
        """
        Initialize the classifier.

        Args:
            feature_extractor: Frozen embedding model shared with other callers
            config: Training configuration (defaults to the global config)
        """
        if config is None:
            from .config import config as classifier_config
            config = classifier_config.training

        if config.epochs <= 0:
            raise ConfigurationError("epochs must be positive")
        if config.batch_size <= 0:
            raise ConfigurationError("batch_size must be positive")

        self.feature_extractor = feature_extractor
        self.config = config

    def build_dataset(self, classes: Sequence[ClassDefinition]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Embed every sample of every class.

        Args:
            classes: Classes to embed, in label order

        Returns:
            Tuple of (embeddings [n_samples, dim], labels [n_samples])

        Raises:
            ValidationError: If there are no samples at all
            InvalidImageError: If a sample cannot be decoded
            ModelUnavailableError: If the feature extractor is not available
        """
        images: List[Image.Image] = []
        labels: List[int] = []
        for label, class_def in enumerate(classes):
            for payload in class_def.samples:
                images.append(load_image(payload))
                labels.append(label)

        if not images:
            raise ValidationError("No samples to train on")

        embeddings = self.feature_extractor.embed_batch(images)
        logger.debug(f"Built dataset with {len(labels)} samples of dimension {embeddings.shape[1]}")
        return embeddings.astype(np.float32), np.asarray(labels, dtype=np.int64)

    def train(
        self,
        classes: Sequence[ClassDefinition],
        progress_callback: Optional[ProgressCallback] = None,
        registry_revision: int = 0
    ) -> TrainedModelState:
        """
        Train a new head on the given classes and evaluate it.

        Args:
            classes: Class snapshot to train on; label i is classes[i]
            progress_callback: Called after each epoch with a fraction in [0, 1]
            registry_revision: Registry revision the snapshot was taken at

        Returns:
            The new TrainedModelState, including its TrainingMetrics
        """
        if not classes:
            raise ValidationError("At least one class is required for training")

        embeddings, labels = self.build_dataset(classes)
        features = torch.from_numpy(embeddings)
        targets = torch.from_numpy(labels)

        generator = torch.Generator().manual_seed(self.config.seed)
        # Seed head initialization without touching the caller's global RNG
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(self.config.seed)
            head = ClassificationHead(features.shape[1], len(classes), self.config.hidden_units)
        optimizer = torch.optim.Adam(head.parameters(), lr=self.config.learning_rate)
        criterion = nn.CrossEntropyLoss()

        logger.info(
            f"Training head on {len(targets)} samples across {len(classes)} classes "
            f"for {self.config.epochs} epochs"
        )

        loss_history: List[float] = []
        num_batches = math.ceil(len(targets) / self.config.batch_size)
        for epoch in range(self.config.epochs):
            head.train()
            permutation = torch.randperm(len(targets), generator=generator)
            total_loss = 0.0

            for start in range(0, len(targets), self.config.batch_size):
                batch_idx = permutation[start:start + self.config.batch_size]

                optimizer.zero_grad()
                loss = criterion(head(features[batch_idx]), targets[batch_idx])
                loss.backward()
                optimizer.step()

                total_loss += loss.item()

            avg_loss = total_loss / num_batches
            loss_history.append(avg_loss)
            logger.debug(f"Epoch {epoch + 1}/{self.config.epochs} - Loss: {avg_loss:.4f}")

            if progress_callback is not None:
                progress_callback((epoch + 1) / self.config.epochs)

        head.eval()
        metrics = self.evaluate(head, features, labels, [c.name for c in classes], loss_history)
        logger.info(f"Training finished - Accuracy: {metrics.accuracy:.2%} on {metrics.total_samples} samples")

        return TrainedModelState(
            head=head,
            class_ids=tuple(c.id for c in classes),
            class_names=tuple(c.name for c in classes),
            embedding_dim=int(features.shape[1]),
            registry_revision=registry_revision,
            metrics=metrics,
        )

    def evaluate(
        self,
        head: nn.Module,
        features: torch.Tensor,
        labels: np.ndarray,
        class_names: Sequence[str],
        loss_history: Optional[List[float]] = None
    ) -> TrainingMetrics:
        """
        Predict every sample and tally actual-vs-predicted pairs.

        Returns:
            TrainingMetrics with accuracy and a sparse confusion matrix
        """
        with torch.inference_mode():
            predicted = head(features).argmax(dim=1).cpu().numpy()

        tally = Counter(zip(labels.tolist(), predicted.tolist()))
        confusion_matrix = [
            ConfusionMatrixEntry(
                actual=class_names[actual],
                predicted=class_names[guess],
                count=tally[(actual, guess)]
            )
            for actual, guess in sorted(tally)
        ]

        total = len(labels)
        correct = int((predicted == labels).sum())
        return TrainingMetrics(
            accuracy=correct / total if total else 0.0,
            total_samples=total,
            confusion_matrix=confusion_matrix,
            loss_history=list(loss_history or []),
        )

    def predict(self, state: Optional[TrainedModelState], image: Image.Image) -> Tuple[int, float]:
        """
        Classify one image with a trained head.

        Args:
            state: Trained model to use
            image: Decoded query image

        Returns:
            Tuple of (class index into state.class_ids, softmax probability)

        Raises:
            ModelNotTrainedError: If no trained state is given
        """
        if state is None:
            raise ModelNotTrainedError("Model has not been trained")

        embedding = torch.from_numpy(self.feature_extractor.embed(image).astype(np.float32))
        if embedding.shape[0] != state.embedding_dim:
            raise ModelNotTrainedError(
                f"Embedding dimension {embedding.shape[0]} doesn't match "
                f"trained head dimension {state.embedding_dim}"
            )

        with torch.inference_mode():
            probabilities = torch.softmax(state.head(embedding.unsqueeze(0)), dim=1)[0]

        index = int(probabilities.argmax())
        confidence = float(min(max(probabilities[index].item(), 0.0), 1.0))
        return index, confidence
