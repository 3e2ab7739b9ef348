"""Oracle integration: classification and story explanations over OpenAI."""

from app.services.openai.classifier import OpenAIClassifier
from app.services.openai.client import (
    OpenAIClientManager,
    chat_json,
    close_client_manager,
    get_client_manager,
    parse_json_content,
)
from app.services.openai.contexts import ClassificationContext, ExplanationEvent, RawArticle
from app.services.openai.explanations import ExplanationService
from app.services.openai.fallback import generate_fallback_explanation
from app.services.openai.schemas import ClassificationOutput, Explanation
from app.services.openai.validation import extract_tickers, validate_explanation


__all__ = [
    "ClassificationContext",
    "ClassificationOutput",
    "Explanation",
    "ExplanationEvent",
    "ExplanationService",
    "OpenAIClassifier",
    "OpenAIClientManager",
    "RawArticle",
    "chat_json",
    "close_client_manager",
    "extract_tickers",
    "generate_fallback_explanation",
    "get_client_manager",
    "parse_json_content",
    "validate_explanation",
]
