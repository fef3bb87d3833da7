"""
Tests for the FastAPI backend.
"""

import threading
import time
from fastapi.testclient import TestClient

from multi_class_image_classifier import BedrockImageClassifier, create_pipeline
from multi_class_image_classifier.config import AWSConfig, RemoteConfig, RetryConfig
from multi_class_image_classifier.exceptions import RegistryLockedError, InferenceInProgressError
from ui.backend.backend_api import create_app, handle_api_error
from ui.backend.config import APIConfig
from tests.helpers import (
    FakeFeatureExtractor,
    make_cat_dog_registry,
    make_config,
    solid_image_payload
)


def wait_for_state(client, state, timeout=15.0):
    """Poll the training endpoint until it reports the given state."""
    deadline = time.monotonic() + timeout
    status = client.get("/training").json()
    while status["state"] != state and time.monotonic() < deadline:
        time.sleep(0.05)
        status = client.get("/training").json()
    return status


class TestBackendAPI:
    """Test cases for the backend endpoints."""

    def setup_method(self):
        """Set up test fixtures."""
        self.registry = make_cat_dog_registry()
        self.pipeline = create_pipeline(
            config=make_config(),
            registry=self.registry,
            feature_extractor=FakeFeatureExtractor(),
            remote=BedrockImageClassifier(RemoteConfig(enabled=False), AWSConfig(), RetryConfig()),
        )
        self.app = create_app(self.pipeline, APIConfig())
        self.client = TestClient(self.app)
        self.red = solid_image_payload((210, 35, 35))

    def teardown_method(self):
        self.app.state.training_executor.shutdown(wait=True)
        self.pipeline.shutdown()

    def test_health(self):
        response = self.client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["model_ready"] is False
        assert [m["name"] for m in data["models"]] == [
            "MobileNet CNN", "Color Histogram", "Nova Lite (Bedrock)"
        ]

    def test_list_classes(self):
        response = self.client.get("/classes")

        assert response.status_code == 200
        assert [c["name"] for c in response.json()] == ["Cat", "Dog"]
        assert all(c["sample_count"] == 3 for c in response.json())
        assert all(c["samples"] is None for c in response.json())

    def test_list_classes_with_samples(self):
        response = self.client.get("/classes", params={"include_samples": True})

        assert len(response.json()[0]["samples"]) == 3

    def test_create_rename_and_delete_class(self):
        created = self.client.post("/classes", json={"name": "Bird"})
        assert created.status_code == 201
        class_id = created.json()["id"]

        renamed = self.client.patch(f"/classes/{class_id}", json={"name": "Parrot"})
        assert renamed.json()["name"] == "Parrot"

        deleted = self.client.delete(f"/classes/{class_id}")
        assert deleted.status_code == 200
        assert class_id not in self.registry

    def test_create_class_default_name(self):
        response = self.client.post("/classes", json={})

        assert response.json()["name"] == "Class 3"

    def test_duplicate_class_name(self):
        response = self.client.post("/classes", json={"name": "cat"})

        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"

    def test_unknown_class(self):
        response = self.client.patch("/classes/missing", json={"name": "Other"})

        assert response.status_code == 404
        assert response.json()["details"] == "ClassNotFoundError"

    def test_add_and_remove_sample(self):
        class_id = self.registry.list_classes()[0].id

        added = self.client.post(f"/classes/{class_id}/samples", json={"image": self.red})
        assert added.status_code == 201
        assert added.json()["sample_count"] == 4

        removed = self.client.delete(f"/classes/{class_id}/samples/0")
        assert removed.json()["sample_count"] == 3

    def test_add_invalid_sample(self):
        class_id = self.registry.list_classes()[0].id

        response = self.client.post(f"/classes/{class_id}/samples", json={"image": "not an image"})

        assert response.status_code == 400
        assert response.json()["details"] == "InvalidImageError"

    def test_remove_sample_out_of_range(self):
        class_id = self.registry.list_classes()[0].id

        response = self.client.delete(f"/classes/{class_id}/samples/99")

        assert response.status_code == 400

    def test_train_rejects_underpopulated_classes(self):
        self.registry.add_class("Bird")

        response = self.client.post("/train")

        assert response.status_code == 400
        assert response.json()["details"] == "ValidationError"

    def test_second_train_request_is_rejected(self):
        """Test a second POST /train before the first run starts gets 409."""
        release = threading.Event()
        runs = []

        def slow_train():
            runs.append(1)
            release.wait(5)

        self.pipeline.controller.train = slow_train

        first = self.client.post("/train")
        second = self.client.post("/train")
        release.set()
        self.app.state.training_future.result(5)

        assert first.status_code == 202
        assert second.status_code == 409
        assert runs == [1]

    def test_predict_before_training(self):
        """Test the untrained slot fails while the baseline still answers."""
        response = self.client.post("/predict", json={"image": self.red})

        assert response.status_code == 200
        predictions = response.json()["predictions"]
        assert len(predictions) == 3
        assert predictions[0]["error"] == "ModelNotTrainedError"
        assert predictions[1]["class_name"] == "Cat"
        assert predictions[2]["error"] == "RemoteUnavailableError"

    def test_train_then_predict(self):
        response = self.client.post("/train")
        assert response.status_code == 202

        status = wait_for_state(self.client, "ready")
        assert status["model_ready"] is True
        assert status["progress"] == 1.0
        assert status["metrics"]["total_samples"] == 6

        predictions = self.client.post("/predict", json={"image": self.red}).json()["predictions"]
        assert predictions[0]["model_name"] == "MobileNet CNN"
        assert predictions[0]["class_name"] == "Cat"
        assert 0.0 <= predictions[0]["confidence"] <= 1.0

    def test_delete_class_after_training(self):
        """Test predictions are refused once the trained classes change."""
        self.client.post("/train")
        wait_for_state(self.client, "ready")
        dog_id = self.registry.list_classes()[1].id

        deleted = self.client.delete(f"/classes/{dog_id}")
        predictions = self.client.post("/predict", json={"image": self.red}).json()["predictions"]

        assert deleted.json()["model_ready"] is False
        assert predictions[0]["error"] == "StaleModelError"
        assert predictions[1]["class_name"] == "Cat"

    def test_image_too_large(self):
        app = create_app(self.pipeline, APIConfig(max_image_size_mb=0))
        client = TestClient(app)

        response = client.post("/predict", json={"image": self.red})

        assert response.status_code == 400
        app.state.training_executor.shutdown()


class TestHandleApiError:
    """Test error to status code mapping."""

    def test_conflicts(self):
        assert handle_api_error(RegistryLockedError("locked")).status_code == 409
        assert handle_api_error(InferenceInProgressError("busy")).status_code == 409

    def test_unexpected_error(self):
        assert handle_api_error(RuntimeError("boom")).status_code == 500
