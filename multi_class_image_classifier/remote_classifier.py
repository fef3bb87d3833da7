"""
Remote multimodal classifier backed by the Amazon Bedrock converse API.

The adapter never raises from classify(): missing credentials, service
errors, timeouts and unusable answers all come back as failure-shaped
PredictionResults whose reasoning explains what went wrong.
"""

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import Any, Dict, List, Optional, Sequence
import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError
)
from .config import AWSConfig, RemoteConfig, RetryConfig
from .image_utils import load_image, to_jpeg_bytes
from .models.data_models import ClassDefinition, ModelType, PredictionResult
from .prompts import ImageClassificationPrompts, ToolDefinitions
from .exceptions import (
    ClassifierError,
    ConfigurationError,
    RemoteClassifierError,
    RemoteParseError,
    RemoteTimeoutError,
    RemoteUnavailableError
)


logger = logging.getLogger(__name__)


class BedrockImageClassifier:
    """
    Asks a Bedrock multimodal model to pick the class of a query image.

    The request carries the class names, a bounded number of exemplar images
    per class and the query image. The answer is validated against the class
    names that were sent.
    """

    model_type = ModelType.REMOTE

    def __init__(
        self,
        config: Optional[RemoteConfig] = None,
        aws_config: Optional[AWSConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Any = None,
        session: Optional[boto3.Session] = None
    ):
        """
        Initialize the remote classifier.

        Args:
            config: Remote classifier configuration (defaults to the global config)
            aws_config: AWS region and default model (defaults to the global config)
            retry_config: Retry and socket timeout settings (defaults to the global config)
            client: Pre-built bedrock-runtime client; skips the credential check
            session: boto3 session used to resolve credentials and build the client
        """
        from .config import config as classifier_config
        self.config = config or classifier_config.remote
        self.aws_config = aws_config or classifier_config.aws
        self.retry_config = retry_config or classifier_config.retry
        self.model_id = self.config.model_id or self.aws_config.default_nova_lite_model

        if self.config.max_exemplars_per_class < 0:
            raise ConfigurationError("max_exemplars_per_class cannot be negative")
        if self.config.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if self.config.enabled and client is None:
            budget = self.botocore_budget
            if budget > self.config.timeout:
                raise ConfigurationError(
                    f"Bedrock retries may run for {budget}s, longer than the {self.config.timeout}s "
                    f"remote timeout; lower AWS_READ_TIMEOUT, AWS_CONNECT_TIMEOUT or AWS_RETRY_MAX_ATTEMPTS"
                )

        self._client = client
        self._session = session

    @property
    def botocore_budget(self) -> float:
        """Longest time botocore may spend on one converse call, retries included."""
        retry = self.retry_config
        return (retry.connect_timeout + retry.read_timeout) * max(retry.max_attempts, 1)

    def has_credentials(self) -> bool:
        """Check whether AWS credentials can be resolved for the Bedrock call."""
        if self._client is not None:
            return True
        try:
            session = self._session or boto3.Session(region_name=self.aws_config.bedrock_region)
            return session.get_credentials() is not None
        except BotoCoreError as e:
            logger.warning(f"Could not resolve AWS credentials: {e}")
            return False

    def _get_bedrock_client(self):
        """Get or create boto3 Bedrock runtime client."""
        if self._client is None:
            try:
                client_config = Config(
                    region_name=self.aws_config.bedrock_region,
                    retries={
                        'max_attempts': self.retry_config.max_attempts,
                        'mode': self.retry_config.mode
                    },
                    read_timeout=self.retry_config.read_timeout,
                    connect_timeout=self.retry_config.connect_timeout
                )
                session = self._session or boto3.Session(region_name=self.aws_config.bedrock_region)
                self._client = session.client('bedrock-runtime', config=client_config)
            except Exception as e:
                raise RemoteUnavailableError(f"Failed to initialize Bedrock client: {e}")
        return self._client

    def classify(self, image: str, classes: Sequence[ClassDefinition]) -> PredictionResult:
        """
        Classify a query image with the remote model.

        Args:
            image: Base64 encoded query image
            classes: Classes to choose from, with their exemplar samples

        Returns:
            PredictionResult; failure-shaped if the remote model could not answer
        """
        if not self.config.enabled:
            return PredictionResult.failure(
                self.model_type,
                RemoteUnavailableError.__name__,
                "Remote classifier is disabled by configuration"
            )

        # One thread per call: a call abandoned at the timeout never delays later ones
        started = time.monotonic()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="remote-classifier")
        future = executor.submit(self._classify, image, list(classes))
        executor.shutdown(wait=False)
        try:
            result = future.result(timeout=self.config.timeout)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(f"Remote classification timed out after {self.config.timeout}s")
            return PredictionResult.failure(
                self.model_type,
                RemoteTimeoutError.__name__,
                f"Remote model did not answer within {self.config.timeout:.0f} seconds"
            )
        except RemoteClassifierError as e:
            logger.warning(f"Remote classification failed: {e}")
            return PredictionResult.from_exception(self.model_type, e)
        except ClassifierError as e:
            logger.warning(f"Remote classification rejected input: {e}")
            return PredictionResult.from_exception(self.model_type, e)
        except Exception as e:
            logger.exception("Unexpected error during remote classification")
            return PredictionResult.failure(
                self.model_type,
                type(e).__name__,
                f"Unexpected error from remote classifier: {e}"
            )

        result.metadata["latency_seconds"] = round(time.monotonic() - started, 3)
        return result

    def _classify(self, image: str, classes: List[ClassDefinition]) -> PredictionResult:
        if not classes:
            raise RemoteUnavailableError("No classes defined to choose from")

        if not self.has_credentials():
            raise RemoteUnavailableError(
                "Remote classifier unavailable: no AWS credentials configured"
            )

        message = self._build_message(image, classes)
        class_names = [c.name for c in classes]
        response = self._call_bedrock_converse(message, class_names)
        return self._parse_response(response, class_names)

    def _build_message(self, image: str, classes: Sequence[ClassDefinition]) -> Dict[str, Any]:
        """
        Build the user message: instructions, labeled exemplars, then the query.

        Raises:
            InvalidImageError: If the query or an exemplar cannot be decoded
        """
        prompts = ImageClassificationPrompts
        content: List[Dict[str, Any]] = [
            {"text": prompts.classification_prompt([c.name for c in classes])}
        ]

        for class_def in classes:
            for index, payload in enumerate(class_def.samples[:self.config.max_exemplars_per_class]):
                content.append({"text": prompts.exemplar_label(class_def.name, index)})
                content.append(self._image_block(payload))

        content.append({"text": prompts.query_label()})
        content.append(self._image_block(image))

        return {"role": "user", "content": content}

    def _image_block(self, payload: str) -> Dict[str, Any]:
        jpeg = to_jpeg_bytes(load_image(payload), self.config.max_image_size, self.config.image_quality)
        return {
            "image": {
                "format": "jpeg",
                "source": {
                    "bytes": jpeg
                }
            }
        }

    def _call_bedrock_converse(self, message: Dict[str, Any], class_names: List[str]) -> Dict[str, Any]:
        """
        Call Bedrock converse API with the classification tool.

        Raises:
            RemoteTimeoutError: If the connection or read timed out
            RemoteUnavailableError: If the service call failed
        """
        client = self._get_bedrock_client()

        logger.info(f"Calling {self.model_id} to classify among {len(class_names)} classes")
        try:
            return client.converse(
                modelId=self.model_id,
                system=[{"text": ImageClassificationPrompts.system_prompt()}],
                messages=[message],
                inferenceConfig={
                    "maxTokens": self.config.max_tokens,
                    "temperature": self.config.temperature,
                    "topP": self.config.top_p
                },
                toolConfig=ToolDefinitions.classification_tool_config(class_names),
            )
        except (ReadTimeoutError, ConnectTimeoutError) as e:
            raise RemoteTimeoutError(f"Bedrock request timed out: {e}")
        except EndpointConnectionError as e:
            raise RemoteUnavailableError(f"Bedrock endpoint unreachable: {e}")
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code in ('ThrottlingException', 'ServiceQuotaExceededException'):
                raise RemoteUnavailableError(f"Bedrock rate limit exceeded: {e}")
            if error_code == 'AccessDeniedException':
                raise RemoteUnavailableError(f"Bedrock access denied: {e}")
            raise RemoteUnavailableError(f"Bedrock client error: {e}")
        except BotoCoreError as e:
            raise RemoteUnavailableError(f"Bedrock connection error: {e}")

    def _parse_response(self, response: Dict[str, Any], class_names: List[str]) -> PredictionResult:
        """
        Extract the chosen class from a converse response.

        Accepts the tool input when the model used the tool, otherwise the
        first JSON object found in its text.

        Raises:
            RemoteParseError: If no valid answer can be extracted
        """
        try:
            content = response['output']['message']['content']
        except (KeyError, TypeError):
            raise RemoteParseError("Malformed Bedrock response: missing message content")

        answer = None
        text_parts = []
        for content_block in content:
            if 'toolUse' in content_block:
                answer = content_block['toolUse'].get('input')
                logger.debug(f"Extracted tool input: {answer}")
                break
            if 'text' in content_block:
                text_parts.append(content_block['text'])

        if answer is None:
            answer = self._extract_json("\n".join(text_parts))

        if not isinstance(answer, dict):
            raise RemoteParseError("Remote answer is not a JSON object")

        class_name = self._match_class_name(str(answer.get("class_name", "")), class_names)

        try:
            confidence = float(answer.get("confidence"))
        except (TypeError, ValueError):
            raise RemoteParseError(f"Invalid confidence in remote answer: {answer.get('confidence')!r}")
        if confidence != confidence:
            raise RemoteParseError("Remote answer confidence is not a number")
        confidence = min(max(confidence, 0.0), 1.0)

        reasoning = str(answer.get("reasoning", "")).strip()
        return PredictionResult(
            model_type=self.model_type,
            class_name=class_name,
            confidence=confidence,
            reasoning=reasoning or None,
            metadata={"model_id": self.model_id}
        )

    @staticmethod
    def _extract_json(response_text: str) -> Dict[str, Any]:
        json_match = re.search(r'\{.*\}', response_text, re.DOTALL)
        if not json_match:
            raise RemoteParseError("No JSON found in remote response")
        try:
            return json.loads(json_match.group(0))
        except json.JSONDecodeError as e:
            raise RemoteParseError(f"Failed to parse JSON from remote response: {e}")

    @staticmethod
    def _match_class_name(name: str, class_names: List[str]) -> str:
        name = name.strip().strip('"\'').strip()
        if name in class_names:
            return name

        folded = {candidate.casefold(): candidate for candidate in class_names}
        if name.casefold() in folded:
            return folded[name.casefold()]

        raise RemoteParseError(f"Remote model answered with unknown class '{name}'")
