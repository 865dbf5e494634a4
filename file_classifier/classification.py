"""
Document classification with Gemini on Vertex AI.
Builds the classification prompt, calls the model and turns its loosely
structured JSON answer into a ClassificationResult.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from google import genai
from google.genai import types

from pipeline_shared.errors import ParameterParsingError
from pipeline_shared.parameter_parser import reject_non_finite_constant

logger = logging.getLogger(__name__)

UNCATEGORIZED = "UNCATEGORIZED"
MAX_TEXT_LENGTH = 3000
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_LOCATION = "us-central1"

JSON_FENCE_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")


@dataclass
class CategoryFolder:
    """A candidate category: a sub-folder of the category root folder."""
    id: str
    name: str


@dataclass
class ClassificationResult:
    """Outcome of classifying one document.

    ``category_name`` and ``category_folder_id`` are both None when the
    document is uncategorized or the model named an unknown category.
    """
    category_name: Optional[str]
    category_folder_id: Optional[str]
    confidence: float
    reasoning: str


def _balanced_object_spans(text: str) -> Iterator[str]:
    """Yield each top-level ``{...}`` span of ``text`` in order.

    Braces inside JSON string literals do not count. Scanning stops at the
    first ``{`` that is never closed.
    """
    depth = 0
    start = None
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"' and depth > 0:
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                yield text[start:index + 1]


def extract_json_object(response_text: str) -> Dict[str, Any]:
    """Pull the JSON object out of a model response.

    The interior of a ```json fenced block is used when present, otherwise the
    whole text. The first balanced ``{...}`` span that parses as a JSON object
    wins.

    Args:
        response_text: Raw model output

    Returns:
        The parsed object

    Raises:
        ParameterParsingError: No balanced object span exists, or none parses
    """
    fence = JSON_FENCE_PATTERN.search(response_text)
    json_text = fence.group(1) if fence else response_text

    last_error = None
    for span in _balanced_object_spans(json_text):
        try:
            parsed = json.loads(span, parse_constant=reject_non_finite_constant)
        except ValueError as e:
            last_error = e
            continue
        if isinstance(parsed, dict):
            return parsed

    if last_error is None:
        raise ParameterParsingError("No JSON object found in Gemini response")

    raise ParameterParsingError("Failed to parse JSON object from Gemini response", last_error)


def parse_classification_response(
    response_text: str,
    categories: List[CategoryFolder]
) -> ClassificationResult:
    """Turn a model response into a ClassificationResult.

    Args:
        response_text: Raw model output
        categories: Candidate category folders

    Returns:
        ClassificationResult; an unknown category name yields no folder,
        zero confidence and a reasoning naming the unknown category

    Raises:
        ParameterParsingError: The response holds no valid classification object
    """
    parsed = extract_json_object(response_text)

    category = parsed.get("category")
    confidence = parsed.get("confidence")
    reasoning = parsed.get("reasoning")

    if (not isinstance(category, str)
            or isinstance(confidence, bool)
            or not isinstance(confidence, (int, float))
            or not isinstance(reasoning, str)):
        raise ParameterParsingError("Invalid response structure from Gemini")

    confidence = float(max(0.0, min(1.0, confidence)))

    folder = next((c for c in categories if c.name == category), None)

    if folder is not None:
        return ClassificationResult(folder.name, folder.id, confidence, reasoning)

    if category == UNCATEGORIZED:
        return ClassificationResult(None, None, confidence, reasoning)

    # Unverifiable category claims get zero confidence
    logger.warning(f"Gemini returned unknown category: {category}")
    return ClassificationResult(
        category_name=None,
        category_folder_id=None,
        confidence=0.0,
        reasoning=f'Category "{category}" not found in available folders',
    )


def build_classification_prompt(text: str, categories: List[CategoryFolder]) -> str:
    """Build the prompt; the document text is cut to MAX_TEXT_LENGTH characters."""
    categories_list = "\n".join(f"{i + 1}. {c.name}" for i, c in enumerate(categories))
    truncated_text = text[:MAX_TEXT_LENGTH]

    return f"""
    You are a document classification expert. Analyze the document text below and
    choose the single most appropriate category.

    Available categories:
    {categories_list}

    Document text:
    {truncated_text}

    Instructions:
    - Choose exactly one category from the list above, using its name as written
    - If no category fits, answer "{UNCATEGORIZED}"
    - Respond with JSON in this format:

    {{
        "category": "chosen category name",
        "confidence": 0.95,
        "reasoning": "short explanation of the choice"
    }}

    confidence is a number from 0.0 to 1.0 expressing how sure you are.
    """


class GeminiClassifier:
    """Classifies document text into category folders with Gemini."""

    def __init__(
        self,
        project_id: str,
        location: str = DEFAULT_LOCATION,
        model_name: str = DEFAULT_MODEL,
        client: genai.Client = None
    ):
        """Initialize the classifier.

        Args:
            project_id: Google Cloud project ID used for Vertex AI
            location: Vertex AI region
            model_name: Name of the generative model to use
            client: Existing genai client (or None to create one)
        """
        self.project_id = project_id
        self.model_name = model_name
        self.client = client or genai.Client(vertexai=True, project=project_id, location=location)

    def classify(self, text: str, categories: List[CategoryFolder]) -> ClassificationResult:
        """Classify document text.

        Args:
            text: Extracted document text
            categories: Candidate category folders

        Returns:
            ClassificationResult
        """
        prompt = build_classification_prompt(text, categories)

        response = self.client.models.generate_content(
            model=self.model_name,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=0.1)
        )

        response_text = response.text
        if not response_text:
            raise RuntimeError("No response from Gemini API")

        return parse_classification_response(response_text, categories)


def classify_with_gemini(
    project_id: str,
    text: str,
    categories: List[CategoryFolder],
    client: genai.Client = None,
    model_name: str = DEFAULT_MODEL,
    location: str = DEFAULT_LOCATION
) -> ClassificationResult:
    """Classify document text with a one-off GeminiClassifier."""
    classifier = GeminiClassifier(project_id, location=location, model_name=model_name, client=client)
    return classifier.classify(text, categories)
