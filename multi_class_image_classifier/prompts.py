"""
Prompt templates for the multi-model image classifier library.
Contains the prompts and tool definitions sent to the remote multimodal model.
"""

from typing import Any, Dict, List


class ImageClassificationPrompts:
    """Prompts for remote image classification."""

    @staticmethod
    def system_prompt() -> str:
        """System prompt for the image classification model."""
        return (
            "You are an expert image classifier. You compare a query image with labeled "
            "example images and pick the single best matching label."
        )

    @staticmethod
    def classification_prompt(class_names: List[str]) -> str:
        """Create the opening instructions listing the candidate classes."""
        class_list = "\n".join(f"- {name}" for name in class_names)
        return f"""Classify the QUERY IMAGE into exactly one of the following classes:
{class_list}

Labeled example images for each class follow. Each example is preceded by its class name.
After the examples comes the QUERY IMAGE.

INSTRUCTIONS:
1. Compare the query image with the examples of every class
2. Choose the class whose examples match the query image best
3. The class name must be copied exactly from the list above
4. Estimate your confidence as a number between 0.0 and 1.0
5. Give a short justification (one or two sentences)

Use the select_image_class tool to provide your answer. If you cannot use the tool, answer with a
JSON object: {{"class_name": "...", "confidence": 0.0, "reasoning": "..."}}"""

    @staticmethod
    def exemplar_label(class_name: str, index: int) -> str:
        """Label placed before an example image."""
        return f"Example {index + 1} of class \"{class_name}\":"

    @staticmethod
    def query_label() -> str:
        """Label placed before the query image."""
        return "QUERY IMAGE:"


class ToolDefinitions:
    """Tool specifications for structured model output."""

    CLASSIFICATION_TOOL_NAME = "select_image_class"

    @classmethod
    def classification_tool_config(cls, class_names: List[str]) -> Dict[str, Any]:
        """Tool configuration asking for class name, confidence and reasoning."""
        return {
            "tools": [
                {
                    "toolSpec": {
                        "name": cls.CLASSIFICATION_TOOL_NAME,
                        "description": "Report the class that best matches the query image",
                        "inputSchema": {
                            "json": {
                                "type": "object",
                                "properties": {
                                    "class_name": {
                                        "type": "string",
                                        "enum": list(class_names),
                                        "description": "Name of the best matching class, copied exactly"
                                    },
                                    "confidence": {
                                        "type": "number",
                                        "description": "Confidence between 0.0 and 1.0"
                                    },
                                    "reasoning": {
                                        "type": "string",
                                        "description": "Short justification for the choice"
                                    }
                                },
                                "required": ["class_name", "confidence", "reasoning"]
                            }
                        }
                    }
                }
            ]
        }
