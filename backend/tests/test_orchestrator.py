import json
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from conftest import FakePromptStore, sent_messages
from finance_bot.llm.extraction import StructuredExtractor
from finance_bot.llm.orchestrator import IntentOrchestrator
from finance_bot.llm.prompts import PromptManager


@pytest.fixture
def orchestrator(prompts: PromptManager, extractor: StructuredExtractor) -> IntentOrchestrator:
    return IntentOrchestrator(prompts, extractor)


def test_returns_the_model_decision(
    orchestrator: IntentOrchestrator, model_replies: Callable[..., None], openai_client: MagicMock
) -> None:
    model_replies(json.dumps({"intent": "track_expense", "confidence": 0.95, "reasoning": "spending"}))

    decision = orchestrator.analyze_intent("Spent $50 on groceries")

    assert decision.intent == "track_expense"
    assert decision.confidence == 0.95
    assert sent_messages(openai_client) == [
        {"role": "system", "content": "Classify the user's intent."},
        {"role": "user", "content": "Spent $50 on groceries"},
    ]
    kwargs = openai_client.chat.completions.create.call_args.kwargs
    assert kwargs["temperature"] == 0.1
    assert kwargs["max_tokens"] == 500
    assert kwargs["response_format"]["json_schema"]["name"] == "orchestrator_decision"


def test_model_failure_degrades_to_unknown(orchestrator: IntentOrchestrator, openai_client: MagicMock) -> None:
    openai_client.chat.completions.create.side_effect = OpenAIError("timeout")

    decision = orchestrator.analyze_intent("hello")

    assert decision.intent == "unknown"
    assert decision.confidence == 0
    assert decision.reasoning == "Failed to analyze intent"


def test_missing_prompt_degrades_to_unknown(
    orchestrator: IntentOrchestrator, prompt_store: FakePromptStore, openai_client: MagicMock
) -> None:
    del prompt_store.prompts["orchestrator-intent"]

    decision = orchestrator.analyze_intent("hello")

    assert decision.intent == "unknown"
    openai_client.chat.completions.create.assert_not_called()


@pytest.mark.parametrize(
    "reply",
    [
        "not json at all",
        json.dumps({"intent": "buy_stocks", "confidence": 0.9}),
        json.dumps({"intent": "general_chat", "confidence": 0.9, "extra": True}),
    ],
)
def test_invalid_output_degrades_to_unknown(
    orchestrator: IntentOrchestrator, model_replies: Callable[..., None], reply: str
) -> None:
    model_replies(reply)

    assert orchestrator.analyze_intent("hello").intent == "unknown"
