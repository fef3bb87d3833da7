"""
FastAPI backend for the multi-model image classifier.
Exposes class management, training and side-by-side prediction to the frontend.
"""

import sys
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

# Configure logging for the backend
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

# Set specific loggers to appropriate levels
logging.getLogger("botocore").setLevel(logging.WARNING)  # Reduce boto3 noise
logging.getLogger("urllib3").setLevel(logging.WARNING)  # Reduce HTTP noise

logger = logging.getLogger(__name__)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from multi_class_image_classifier import (
    ClassificationPipeline,
    ClassDefinition,
    ModelType,
    create_pipeline,
    ClassifierError,
    ClassNotFoundError,
    InferenceInProgressError,
    InvalidImageError,
    RegistryError,
    RegistryLockedError,
    TrainingInProgressError,
    ValidationError
)

from .config import config, APIConfig


# Pydantic models for API requests/responses

class ClassModel(BaseModel):
    """API model for a class definition."""
    id: str = Field(..., description="Class ID")
    name: str = Field(..., description="Class name")
    sample_count: int = Field(..., description="Number of example images")
    samples: Optional[List[str]] = Field(default=None, description="Base64 encoded example images")


class CreateClassRequestModel(BaseModel):
    """API model for class creation."""
    name: Optional[str] = Field(default=None, description="Class name; defaults to the next 'Class N'")


class RenameClassRequestModel(BaseModel):
    """API model for renaming a class."""
    name: str = Field(..., description="New class name")


class ImageRequestModel(BaseModel):
    """API model carrying one encoded image."""
    image: str = Field(..., description="Base64 encoded image, optionally as a data URL")


class ErrorResponse(BaseModel):
    """API model for error responses."""
    error: str = Field(..., description="Error message")
    details: Optional[str] = Field(default=None, description="Error details")
    type: str = Field(default="error", description="Error type")


def to_class_model(class_def: ClassDefinition, include_samples: bool = False) -> ClassModel:
    """Convert a library class definition to its API model."""
    return ClassModel(
        id=class_def.id,
        name=class_def.name,
        sample_count=class_def.sample_count,
        samples=list(class_def.samples) if include_samples else None
    )


def handle_api_error(e: Exception) -> JSONResponse:
    """Handle API errors and return appropriate JSON response."""
    if isinstance(e, ClassNotFoundError):
        status_code, error_type = 404, "not_found"
    elif isinstance(e, (RegistryLockedError, TrainingInProgressError, InferenceInProgressError)):
        status_code, error_type = 409, "conflict"
    elif isinstance(e, (ValidationError, RegistryError, InvalidImageError, ValueError)):
        status_code, error_type = 400, "validation_error"
    elif isinstance(e, ClassifierError):
        status_code, error_type = 500, "classifier_error"
    else:
        status_code, error_type = 500, "internal_error"

    if status_code == 500:
        logger.error(f"Request failed: {e}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=str(e) or type(e).__name__,
            details=type(e).__name__,
            type=error_type
        ).model_dump()
    )


def create_app(
    pipeline: Optional[ClassificationPipeline] = None,
    api_config: Optional[APIConfig] = None
) -> FastAPI:
    """
    Create the FastAPI application around a classification pipeline.

    Args:
        pipeline: Pipeline to serve; a default one is created if omitted
        api_config: API settings (defaults to the global backend config)

    Returns:
        Configured FastAPI application
    """
    api_config = api_config or config.api
    pipeline = pipeline or create_pipeline()
    training_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="training")
    training_lock = threading.Lock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        training_executor.shutdown(wait=False)
        pipeline.shutdown()

    app = FastAPI(
        title="Multi-Model Image Classifier API",
        description="Train a transfer-learning classifier and compare it with a baseline and a remote model",
        version="0.1.0",
        lifespan=lifespan
    )
    app.state.pipeline = pipeline
    app.state.training_executor = training_executor
    app.state.training_future = None

    # Add CORS middleware for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ClassifierError)
    async def classifier_error_handler(request: Request, exc: ClassifierError):
        return handle_api_error(exc)

    def check_payload_size(image: str) -> None:
        if len(image) > api_config.max_payload_chars:
            raise InvalidImageError(f"Image exceeds {api_config.max_image_size_mb} MB")

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        controller = pipeline.controller
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "services": {
                "feature_extractor": pipeline.feature_extractor.is_ready,
                "model_ready": controller.is_model_ready,
                "training": controller.is_training,
                "predicting": pipeline.orchestrator.is_predicting
            },
            "models": [
                {"name": model_type.value, "description": model_type.description}
                for model_type in ModelType
            ]
        }

    # Class Management Endpoints

    @app.get("/classes", response_model=List[ClassModel])
    def list_classes(include_samples: bool = False):
        """List all classes in order."""
        return [to_class_model(c, include_samples) for c in pipeline.registry.list_classes()]

    @app.post("/classes", response_model=ClassModel, status_code=201)
    def create_class(request: CreateClassRequestModel):
        """Create an empty class."""
        class_id = pipeline.registry.add_class(request.name)
        return to_class_model(pipeline.registry.get_class(class_id))

    @app.patch("/classes/{class_id}", response_model=ClassModel)
    def rename_class(class_id: str, request: RenameClassRequestModel):
        """Rename a class."""
        pipeline.registry.rename_class(class_id, request.name)
        return to_class_model(pipeline.registry.get_class(class_id))

    @app.delete("/classes/{class_id}")
    def delete_class(class_id: str):
        """Delete a class and its samples."""
        pipeline.registry.delete_class(class_id)
        return {"deleted": class_id, "model_ready": pipeline.controller.is_model_ready}

    @app.post("/classes/{class_id}/samples", response_model=ClassModel, status_code=201)
    def add_sample(class_id: str, request: ImageRequestModel):
        """Append an example image to a class."""
        check_payload_size(request.image)
        pipeline.registry.add_sample(class_id, request.image)
        return to_class_model(pipeline.registry.get_class(class_id))

    @app.delete("/classes/{class_id}/samples/{index}", response_model=ClassModel)
    def remove_sample(class_id: str, index: int):
        """Remove an example image from a class."""
        pipeline.registry.remove_sample(class_id, index)
        return to_class_model(pipeline.registry.get_class(class_id))

    # Training Endpoints

    def training_status() -> Dict[str, Any]:
        controller = pipeline.controller
        metrics = controller.metrics
        last_error = controller.last_error
        return {
            "state": controller.state.value,
            "progress": controller.progress,
            "model_ready": controller.is_model_ready,
            "metrics": metrics.to_dict() if metrics else None,
            "last_error": str(last_error) if last_error else None,
            "invalid_class_ids": pipeline.registry.validate()
        }

    @app.post("/train", status_code=202)
    def start_training():
        """Start a training run in the background."""
        controller = pipeline.controller
        with training_lock:
            pending = app.state.training_future
            if controller.is_training or (pending is not None and not pending.done()):
                raise TrainingInProgressError("A training run is already in progress")

            invalid = pipeline.registry.validate()
            if invalid or len(pipeline.registry) == 0:
                raise ValidationError(
                    f"Each class needs at least {pipeline.registry.min_samples_per_class} samples",
                    invalid_class_ids=invalid
                )

            app.state.training_future = training_executor.submit(controller.train)
        logger.info("Training run submitted")
        return training_status()

    @app.get("/training")
    def get_training_status():
        """Current training state, progress and metrics."""
        return training_status()

    # Prediction Endpoints

    @app.post("/predict")
    def predict(request: ImageRequestModel):
        """Classify an image with all three classifiers."""
        check_payload_size(request.image)
        results = pipeline.orchestrator.infer(request.image)
        return {
            "predictions": [r.to_dict() for r in results],
            "model_ready": pipeline.controller.is_model_ready
        }

    return app


def main() -> None:
    """Run the API server."""
    import uvicorn

    logger.info("Starting Multi-Model Image Classifier API server...")
    uvicorn.run(
        "ui.backend.backend_api:create_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        log_level=config.api.log_level
    )


if __name__ == "__main__":
    main()
