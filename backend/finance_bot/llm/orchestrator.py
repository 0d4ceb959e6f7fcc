import logging

from ..schemas import ORCHESTRATOR_JSON_SCHEMA, IntentDecision
from .extraction import StructuredExtractor
from .prompts import PromptManager, first_present

logger = logging.getLogger(__name__)

PROMPT_NAME = "orchestrator-intent"
SCHEMA_NAME = "orchestrator_decision"


class IntentOrchestrator:
    def __init__(self, prompts: PromptManager, extractor: StructuredExtractor) -> None:
        self._prompts = prompts
        self._extractor = extractor

    def analyze_intent(self, message: str) -> IntentDecision:
        """Classify ``message``; never raises, degrades to an ``unknown`` intent."""
        try:
            resolved = self._prompts.get_prompt_with_config(
                PROMPT_NAME, fallback_config={"schema": ORCHESTRATOR_JSON_SCHEMA}
            )
            decision = self._extractor.extract(
                message,
                resolved.prompt,
                SCHEMA_NAME,
                first_present(resolved.schema, ORCHESTRATOR_JSON_SCHEMA),
                IntentDecision,
                temperature=0.1,
                max_tokens=500,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to analyze intent: %s", exc)
            return IntentDecision(intent="unknown", confidence=0, reasoning="Failed to analyze intent")

        logger.info("Intent: %s (confidence %.2f)", decision.intent, decision.confidence)
        return decision
