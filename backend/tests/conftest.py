from collections.abc import Callable, Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock

import pytest

from finance_bot import crud
from finance_bot.db import SessionFactory, create_db_engine, create_session_factory, init_db
from finance_bot.llm.extraction import StructuredExtractor
from finance_bot.llm.gateway import ModelGateway
from finance_bot.llm.prompts import PromptManager, StoredPrompt
from finance_bot.models import AccountType, Currency
from finance_bot.services.expense_tracker import ExpenseTracker

DEFAULT_PROMPTS = {
    "orchestrator-intent": "Classify the user's intent.",
    "expense-parser": "Extract the transaction from the message.",
    "query-generator": "Turn the question into a structured query.",
    "query-validator": "Request: {{ user_request }}\nQuery: {{generated_query}}\nAnswer SAFE or DESTRUCTIVE.",
    "chat-assistant": "You are a helpful finance assistant.",
    "image-with-caption": "Describe this receipt. The user said: {{caption}}",
    "image-description": "Describe this image.",
    "voice-analysis": "Answer the user's spoken request.",
    "document-analysis": "Summarise this document.",
}


class FakePromptStore:
    def __init__(self, prompts: dict[str, StoredPrompt], enabled: bool = True) -> None:
        self.prompts = prompts
        self._enabled = enabled
        self.calls: list[tuple[str, int | None]] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get_prompt(self, name: str, version: int | None = None) -> StoredPrompt | None:
        self.calls.append((name, version))
        return self.prompts.get(name)


def completion(content: str, model: str = "test/model") -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model=model,
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
    )


@pytest.fixture
def session_factory() -> Generator[SessionFactory, None, None]:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory: SessionFactory) -> dict[str, int]:
    with session_factory() as db:
        santander = crud.create_account(db, "Santander", AccountType.BANK, Currency.EUR)
        wallet = crud.create_account(db, "Wallet", AccountType.BANK, Currency.USD)
        card = crud.create_account(db, "BBVA Credit Card", AccountType.CREDIT_CARD, Currency.ARS)
        food = crud.create_category(db, "Food & Groceries")
        return {"santander": santander.id, "wallet": wallet.id, "card": card.id, "food": food.id}


@pytest.fixture
def tracker(session_factory: SessionFactory) -> ExpenseTracker:
    return ExpenseTracker(session_factory)


@pytest.fixture
def openai_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def model_replies(openai_client: MagicMock) -> Callable[..., None]:
    """Queue the contents the mocked model returns, one per chat call."""

    def _queue(*contents: str) -> None:
        openai_client.chat.completions.create.side_effect = [completion(content) for content in contents]

    return _queue


@pytest.fixture
def gateway(openai_client: MagicMock) -> ModelGateway:
    return ModelGateway(api_key="test-key", client=openai_client)


@pytest.fixture
def prompt_store() -> FakePromptStore:
    return FakePromptStore({name: StoredPrompt(text=text) for name, text in DEFAULT_PROMPTS.items()})


@pytest.fixture
def prompts(prompt_store: FakePromptStore) -> PromptManager:
    return PromptManager(prompt_store)


@pytest.fixture
def extractor(gateway: ModelGateway) -> StructuredExtractor:
    return StructuredExtractor(gateway)


def sent_messages(openai_client: MagicMock, call_index: int = 0) -> list[dict[str, Any]]:
    return openai_client.chat.completions.create.call_args_list[call_index].kwargs["messages"]
