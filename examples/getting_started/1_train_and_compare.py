"""
Train the transfer-learning model on two synthetic classes and compare all three classifiers.
"""

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from PIL import Image

from multi_class_image_classifier import ClassRegistry, create_pipeline
from multi_class_image_classifier.image_utils import encode_image


def solid(color):
    return encode_image(Image.new("RGB", (96, 96), color))


# Two classes with three examples each
registry = ClassRegistry(min_samples_per_class=3)
sunset_id = registry.add_class("Sunset")
ocean_id = registry.add_class("Ocean")

for color in [(250, 120, 40), (235, 95, 60), (255, 150, 70)]:
    registry.add_sample(sunset_id, solid(color))
for color in [(20, 80, 180), (30, 110, 200), (10, 60, 150)]:
    registry.add_sample(ocean_id, solid(color))

# Downloads the MobileNet weights on first use
# The remote classifier needs AWS credentials with Bedrock access
pipeline = create_pipeline(registry=registry)

print("Training transfer-learning model...")
run = pipeline.controller.train(
    progress_callback=lambda fraction: print(f"   progress: {fraction:.0%}", end="\r")
)
print()

if not run.succeeded:
    print(f"Training failed: {run.error_message}")
    pipeline.shutdown()
    sys.exit(1)

print(f"Training accuracy: {run.metrics.accuracy:.2%} on {run.metrics.total_samples} samples")
print("Confusion matrix:")
for actual, predictions in run.metrics.rows().items():
    print(f"   {actual}: {predictions}")

query = solid((245, 110, 50))
print("\nPredictions for an orange query image:")
print("=" * 50)
for result in pipeline.orchestrator.infer(query):
    if result.succeeded:
        print(f"{result.model_type.value:>22}: {result.class_name} ({result.confidence:.2f})")
        if result.reasoning:
            print(f"{'':>22}  {result.reasoning}")
    else:
        print(f"{result.model_type.value:>22}: failed ({result.error}) - {result.reasoning}")

pipeline.shutdown()
