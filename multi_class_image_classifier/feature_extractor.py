"""
Frozen pretrained CNN used to embed images for the transfer-learning head.

Weights are loaded once per process, either eagerly in a background thread or
lazily on the first embedding request, and never change afterwards.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence
import numpy as np
import torch
from torch import nn
from torchvision import models, transforms
from PIL import Image
from .config import FeatureExtractorConfig
from .exceptions import ModelUnavailableError


logger = logging.getLogger(__name__)

IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


def _mobilenet_v3_small(pretrained: bool) -> nn.Module:
    weights = models.MobileNet_V3_Small_Weights.DEFAULT if pretrained else None
    backbone = models.mobilenet_v3_small(weights=weights)
    backbone.classifier = nn.Identity()
    return backbone


def _mobilenet_v2(pretrained: bool) -> nn.Module:
    weights = models.MobileNet_V2_Weights.DEFAULT if pretrained else None
    backbone = models.mobilenet_v2(weights=weights)
    backbone.classifier = nn.Identity()
    return backbone


def _resnet18(pretrained: bool) -> nn.Module:
    weights = models.ResNet18_Weights.DEFAULT if pretrained else None
    backbone = models.resnet18(weights=weights)
    backbone.fc = nn.Identity()
    return backbone


BACKBONES: Dict[str, Callable[[bool], nn.Module]] = {
    "mobilenet_v3_small": _mobilenet_v3_small,
    "mobilenet_v2": _mobilenet_v2,
    "resnet18": _resnet18,
}


def create_backbone(backbone_name: str, weights_path: Optional[str] = None) -> nn.Module:
    """
    Create a headless backbone network.

    Args:
        backbone_name: Name of backbone architecture
        weights_path: Optional local state dict for the full network; torchvision's
            pretrained weights are used when omitted

    Returns:
        Backbone with identity final layer

    Raises:
        ModelUnavailableError: If the backbone is unknown or weights cannot be loaded
    """
    if backbone_name not in BACKBONES:
        raise ModelUnavailableError(
            f"Unsupported backbone: {backbone_name}. Choose one of {sorted(BACKBONES)}"
        )

    if weights_path is None:
        try:
            return BACKBONES[backbone_name](True)
        except Exception as e:
            raise ModelUnavailableError(f"Failed to load pretrained weights for {backbone_name}: {e}")

    path = Path(weights_path)
    if not path.is_file():
        raise ModelUnavailableError(f"Feature extractor weights not found: {weights_path}")

    builder = getattr(models, backbone_name)
    try:
        backbone = builder(weights=None)
        backbone.load_state_dict(torch.load(path, map_location="cpu"))
    except Exception as e:
        raise ModelUnavailableError(f"Failed to load weights from {weights_path}: {e}")

    if hasattr(backbone, "fc"):
        backbone.fc = nn.Identity()
    else:
        backbone.classifier = nn.Identity()
    return backbone


class FeatureExtractor:
    """
    Embeds images with a frozen pretrained backbone.

    The extractor is safe to share between threads once loaded: the network is
    kept in eval mode with gradients disabled and is only ever read.
    """

    def __init__(
        self,
        config: Optional[FeatureExtractorConfig] = None,
        backbone: Optional[nn.Module] = None
    ):
        """
        Initialize the extractor without loading any weights yet.

        Args:
            config: Feature extractor configuration (defaults to the global config)
            backbone: Pre-built network to use instead of a torchvision backbone
        """
        if config is None:
            from .config import config as classifier_config
            config = classifier_config.feature_extractor

        self.config = config
        self._injected_backbone = backbone
        self._model: Optional[nn.Module] = None
        self._load_error: Optional[ModelUnavailableError] = None
        self._embedding_dim: Optional[int] = None
        self._ready = threading.Event()
        self._load_lock = threading.Lock()
        self._loader_thread: Optional[threading.Thread] = None

        self._preprocess = transforms.Compose([
            transforms.Resize((config.image_size, config.image_size)),
            transforms.ToTensor(),
            transforms.Normalize(IMAGENET_MEAN, IMAGENET_STD),
        ])

    @property
    def is_ready(self) -> bool:
        """True once the weights are loaded and embeddings can be computed."""
        return self._model is not None

    @property
    def load_error(self) -> Optional[ModelUnavailableError]:
        return self._load_error

    @property
    def embedding_dim(self) -> Optional[int]:
        """Length of the embedding vectors, known after the first embedding."""
        return self._embedding_dim

    def start_background_load(self) -> None:
        """Start loading the weights on a daemon thread and return immediately."""
        with self._load_lock:
            if self._loader_thread is not None or self._ready.is_set():
                return
            self._loader_thread = threading.Thread(
                target=self._load_in_background, name="feature-extractor-loader", daemon=True
            )
            self._loader_thread.start()

    def _load_in_background(self) -> None:
        try:
            self.load()
        except ModelUnavailableError as e:
            logger.error(f"Feature extractor failed to load: {e}")

    def load(self) -> None:
        """
        Load the backbone weights if they are not loaded yet.

        Raises:
            ModelUnavailableError: If loading fails, now or on an earlier attempt
        """
        with self._load_lock:
            if self._model is not None:
                return
            if self._load_error is not None:
                raise self._load_error

            try:
                logger.info(f"Loading feature extractor backbone: {self.config.backbone}")
                if self._injected_backbone is not None:
                    model = self._injected_backbone
                else:
                    model = create_backbone(self.config.backbone, self.config.weights_path)

                model.eval()
                for param in model.parameters():
                    param.requires_grad = False

                self._model = model
                logger.info("Feature extractor ready")
            except ModelUnavailableError as e:
                self._load_error = e
                raise
            except Exception as e:
                self._load_error = ModelUnavailableError(f"Failed to initialize feature extractor: {e}")
                raise self._load_error
            finally:
                self._ready.set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the weights to be available.

        Loads synchronously if no background load was started.

        Args:
            timeout: Seconds to wait for a background load (defaults to config)

        Returns:
            True if the extractor is ready, False if the wait timed out

        Raises:
            ModelUnavailableError: If loading failed
        """
        if self._loader_thread is None and not self._ready.is_set():
            self.load()
            return True

        if timeout is None:
            timeout = self.config.load_timeout
        if not self._ready.wait(timeout):
            return False
        if self._load_error is not None:
            raise self._load_error
        return self._model is not None

    def embed(self, image: Image.Image) -> np.ndarray:
        """
        Embed a single image.

        Returns:
            1-D float32 vector

        Raises:
            ModelUnavailableError: If the backbone cannot be loaded
        """
        return self.embed_batch([image])[0]

    def embed_batch(self, images: Sequence[Image.Image]) -> np.ndarray:
        """
        Embed several images in one forward pass.

        Returns:
            Array of shape (len(images), embedding_dim)

        Raises:
            ModelUnavailableError: If the backbone cannot be loaded
        """
        if not images:
            raise ValueError("At least one image is required")

        model = self._require_model()
        batch = torch.stack([self._preprocess(image.convert("RGB")) for image in images])

        with torch.inference_mode():
            features = model(batch)

        features = features.reshape(features.shape[0], -1).cpu().numpy().astype(np.float32)
        self._embedding_dim = features.shape[1]
        return features

    def _require_model(self) -> nn.Module:
        if self._model is None:
            if not self.wait_until_ready():
                raise ModelUnavailableError("Feature extractor is still loading")
        return self._model
