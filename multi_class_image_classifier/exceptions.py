"""
Exception classes for the multi-model image classifier.
"""


class ClassifierError(Exception):
    """Base exception for classifier errors."""
    pass


class ConfigurationError(ClassifierError):
    """Raised when configuration is invalid."""
    pass


class InvalidImageError(ClassifierError):
    """Raised when an image payload cannot be decoded."""
    pass


class RegistryError(ClassifierError):
    """Raised when a class registry operation is invalid."""
    pass


class ClassNotFoundError(RegistryError):
    """Raised when a class id is not present in the registry."""
    pass


class RegistryLockedError(RegistryError):
    """Raised when the registry is mutated while a training run holds it."""
    pass


class ValidationError(ClassifierError):
    """Raised when classes do not have enough samples to train."""

    def __init__(self, message: str, invalid_class_ids=None):
        super().__init__(message)
        self.invalid_class_ids = list(invalid_class_ids or [])


class ModelUnavailableError(ClassifierError):
    """Raised when the pretrained feature extractor could not be loaded."""
    pass


class ModelNotTrainedError(ClassifierError):
    """Raised when prediction is attempted without a valid trained model."""
    pass


class StaleModelError(ModelNotTrainedError):
    """Raised when the classes changed after the model was trained."""
    pass


class InsufficientDataError(ClassifierError):
    """Raised when a class has no samples to build a descriptor from."""
    pass


class TrainingInProgressError(ClassifierError):
    """Raised when a training run is requested while another one is running."""
    pass


class InferenceInProgressError(ClassifierError):
    """Raised when inference is requested while another call is outstanding."""
    pass


class RemoteClassifierError(ClassifierError):
    """Base exception for remote classifier failures."""
    pass


class RemoteUnavailableError(RemoteClassifierError):
    """Raised when the remote service is not configured or not reachable."""
    pass


class RemoteTimeoutError(RemoteClassifierError):
    """Raised when the remote service does not answer in time."""
    pass


class RemoteParseError(RemoteClassifierError):
    """Raised when the remote response cannot be interpreted."""
    pass
