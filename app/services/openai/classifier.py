"""Full-text article classification through the oracle."""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import OracleResponseError
from app.core.logging import get_logger
from app.services.openai.client import OpenAIClientManager, chat_json, get_client_manager
from app.services.openai.contexts import ClassificationContext
from app.services.openai.prompts import TaskType, build_classification_prompt, get_instructions
from app.services.openai.schemas import ClassificationOutput

logger = get_logger("openai.classifier")


class OpenAIClassifier:
    """Calls the oracle and validates its answer into ClassificationOutput."""

    def __init__(self, manager: OpenAIClientManager | None = None):
        self.manager = manager or get_client_manager()

    @property
    def available(self) -> bool:
        return self.manager.is_configured and not self.manager.is_circuit_open()

    async def classify(self, context: ClassificationContext) -> ClassificationOutput:
        """
        Raises:
            ExternalServiceError: oracle unreachable
            OracleResponseError: reply did not match the classification shape
        """
        messages = [
            {"role": "system", "content": get_instructions(TaskType.CLASSIFY)},
            {"role": "user", "content": build_classification_prompt(context)},
        ]
        data = await chat_json(messages, temperature=0.3, max_tokens=1000, manager=self.manager)
        try:
            return ClassificationOutput.model_validate(data)
        except PydanticValidationError as e:
            raise OracleResponseError(f"Classification failed validation: {e.error_count()} errors")
