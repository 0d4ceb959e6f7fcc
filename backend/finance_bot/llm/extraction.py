import json
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import StructuredOutputError
from .gateway import ModelGateway, json_schema_format, strip_code_fences

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StructuredExtractor:
    """Single entry point for every schema-constrained model call."""

    def __init__(self, gateway: ModelGateway, capability: str = "text-fast") -> None:
        self._gateway = gateway
        self._capability = capability

    def extract(
        self,
        text: str,
        system_prompt: str,
        name: str,
        schema: dict[str, Any],
        model_cls: type[ModelT],
        *,
        temperature: float = 0.2,
        max_tokens: int = 1000,
    ) -> ModelT:
        response = self._gateway.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
            self._gateway.get_model(self._capability),
            temperature=temperature,
            max_tokens=max_tokens,
            response_format=json_schema_format(name, schema),
        )
        logger.debug("Structured output for %s: %s", name, response.content)

        try:
            payload = json.loads(strip_code_fences(response.content))
        except json.JSONDecodeError as exc:
            raise StructuredOutputError(name, f"response is not JSON ({exc.msg})") from exc

        try:
            return model_cls.model_validate(payload)
        except ValidationError as exc:
            raise StructuredOutputError(name, f"{exc.error_count()} validation error(s)") from exc
