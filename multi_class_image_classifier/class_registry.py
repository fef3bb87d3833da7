"""
Registry of user-defined image classes and their samples.

The registry is the single owner of class definitions. Consumers receive
immutable snapshots; every mutation replaces the stored definition and bumps
a revision counter so trained models can tell when they went stale.
"""

import logging
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple
from .models.data_models import ClassDefinition
from .image_utils import validate_payload
from .exceptions import RegistryError, ClassNotFoundError, RegistryLockedError


logger = logging.getLogger(__name__)


class ClassRegistry:
    """Holds class definitions in insertion order."""

    def __init__(self, min_samples_per_class: Optional[int] = None, validate_images: bool = True):
        """
        Initialize an empty registry.

        Args:
            min_samples_per_class: Default threshold used by validate()
            validate_images: Whether add_sample decodes payloads to check them
        """
        if min_samples_per_class is None:
            from .config import config
            min_samples_per_class = config.training.min_samples_per_class
        if min_samples_per_class < 1:
            raise RegistryError("min_samples_per_class must be positive")

        self.min_samples_per_class = min_samples_per_class
        self.validate_images = validate_images
        self._classes: Dict[str, ClassDefinition] = {}
        self._issued_ids = set()
        self._revision = 0
        self._frozen = False
        self._lock = threading.RLock()

    @property
    def revision(self) -> int:
        """Counter incremented by every mutation."""
        return self._revision

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @contextmanager
    def frozen(self) -> Iterator['ClassRegistry']:
        """
        Make the registry read-only for the duration of the block.

        Raises:
            RegistryLockedError: If the registry is already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryLockedError("Registry is already frozen")
            self._frozen = True
        try:
            yield self
        finally:
            with self._lock:
                self._frozen = False

    def add_class(self, name: Optional[str] = None) -> str:
        """
        Add a new class with no samples.

        Args:
            name: Class label; the next free "Class N" is used when omitted

        Returns:
            The new class id
        """
        with self._lock:
            self._ensure_mutable()
            if name is None:
                name = self._next_default_name()
            name = self._check_name(name)

            class_id = self._new_id()
            self._classes[class_id] = ClassDefinition(id=class_id, name=name)
            self._touch()

        logger.info(f"Added class '{name}' ({class_id})")
        return class_id

    def rename_class(self, class_id: str, name: str) -> None:
        """Change the label of an existing class."""
        with self._lock:
            self._ensure_mutable()
            current = self._require(class_id)
            name = self._check_name(name, exclude_id=class_id)
            if name == current.name:
                return
            self._classes[class_id] = ClassDefinition(id=class_id, name=name, samples=current.samples)
            self._touch()

        logger.info(f"Renamed class {class_id} from '{current.name}' to '{name}'")

    def add_sample(self, class_id: str, payload: str) -> int:
        """
        Append an encoded image to a class.

        Returns:
            The new sample count of the class

        Raises:
            InvalidImageError: If the payload is not a decodable image
        """
        if self.validate_images:
            validate_payload(payload)

        with self._lock:
            self._ensure_mutable()
            current = self._require(class_id)
            samples = current.samples + (payload,)
            self._classes[class_id] = ClassDefinition(id=class_id, name=current.name, samples=samples)
            self._touch()

        logger.debug(f"Added sample #{len(samples)} to class '{current.name}'")
        return len(samples)

    def remove_sample(self, class_id: str, index: int) -> None:
        """Remove the sample at `index` from a class."""
        with self._lock:
            self._ensure_mutable()
            current = self._require(class_id)
            if not 0 <= index < len(current.samples):
                raise RegistryError(
                    f"Sample index {index} out of range for class '{current.name}' "
                    f"with {len(current.samples)} samples"
                )
            samples = current.samples[:index] + current.samples[index + 1:]
            self._classes[class_id] = ClassDefinition(id=class_id, name=current.name, samples=samples)
            self._touch()

    def delete_class(self, class_id: str) -> None:
        """Delete a class and all its samples."""
        with self._lock:
            self._ensure_mutable()
            removed = self._require(class_id)
            del self._classes[class_id]
            self._touch()

        logger.info(f"Deleted class '{removed.name}' ({class_id})")

    def get_class(self, class_id: str) -> ClassDefinition:
        with self._lock:
            return self._require(class_id)

    def sample_count(self, class_id: str) -> int:
        return self.get_class(class_id).sample_count

    def list_classes(self) -> Tuple[ClassDefinition, ...]:
        """Get a snapshot of all classes in insertion order."""
        with self._lock:
            return tuple(self._classes.values())

    def snapshot(self) -> Tuple[int, Tuple[ClassDefinition, ...]]:
        """Get the current revision together with a consistent class snapshot."""
        with self._lock:
            return self._revision, tuple(self._classes.values())

    def validate(self, min_samples: Optional[int] = None) -> List[str]:
        """
        Find classes that do not have enough samples to train.

        Args:
            min_samples: Threshold override; defaults to the registry's setting

        Returns:
            Ids of under-populated classes, in registry order
        """
        threshold = self.min_samples_per_class if min_samples is None else min_samples
        with self._lock:
            return [c.id for c in self._classes.values() if c.sample_count < threshold]

    def __len__(self) -> int:
        return len(self._classes)

    def __contains__(self, class_id: object) -> bool:
        return class_id in self._classes

    def _require(self, class_id: str) -> ClassDefinition:
        try:
            return self._classes[class_id]
        except KeyError:
            raise ClassNotFoundError(f"Class not found: {class_id}")

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RegistryLockedError("Classes cannot be changed while training is in progress")

    def _check_name(self, name: str, exclude_id: Optional[str] = None) -> str:
        if not isinstance(name, str) or not name.strip():
            raise RegistryError("Class name cannot be empty")
        name = name.strip()
        for other in self._classes.values():
            if other.id != exclude_id and other.name.casefold() == name.casefold():
                raise RegistryError(f"A class named '{other.name}' already exists")
        return name

    def _next_default_name(self) -> str:
        taken = {c.name.casefold() for c in self._classes.values()}
        number = len(self._classes) + 1
        while f"class {number}" in taken:
            number += 1
        return f"Class {number}"

    def _new_id(self) -> str:
        while True:
            class_id = uuid.uuid4().hex[:12]
            if class_id not in self._issued_ids:
                self._issued_ids.add(class_id)
                return class_id

    def _touch(self) -> None:
        self._revision += 1


def create_default_registry(min_samples_per_class: Optional[int] = None) -> ClassRegistry:
    """Create a registry seeded with two empty classes, "Class 1" and "Class 2"."""
    registry = ClassRegistry(min_samples_per_class=min_samples_per_class)
    registry.add_class("Class 1")
    registry.add_class("Class 2")
    return registry
