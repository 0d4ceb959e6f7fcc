"""Natural-language analytics: generate a structured query, vet it, run it, render it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Union

from .. import crud
from ..db import SessionFactory
from ..domain.entities import (
    AccountActivityRank,
    AccountExpenseRank,
    CategoryExpenseSummary,
    CountResult,
    CreditCardDebt,
)
from ..errors import QueryGenerationError, UnsafeQueryError
from ..llm.extraction import StructuredExtractor
from ..llm.gateway import ModelGateway
from ..llm.prompts import PromptManager, compile_prompt, first_present
from ..schemas import ALLOWED_QUERY_TYPES, QUERY_GENERATOR_JSON_SCHEMA, GeneratedQuery

logger = logging.getLogger(__name__)

GENERATOR_PROMPT = "query-generator"
VALIDATOR_PROMPT = "query-validator"
SCHEMA_NAME = "query_generator"
VALIDATION_QUESTION = (
    "Based on the rules in the system prompt, is the query safe? "
    "Respond with a single word: SAFE or DESTRUCTIVE."
)
SAFE_VERDICT = "SAFE"
EPOCH = datetime(1970, 1, 1)

QueryResult = Union[
    list[AccountExpenseRank],
    list[CategoryExpenseSummary],
    list[CreditCardDebt],
    list[AccountActivityRank],
    CountResult,
]


@dataclass(slots=True, frozen=True)
class TimeWindow:
    start: datetime
    end: datetime


def resolve_time_window(period: str | None, now: datetime) -> TimeWindow:
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        start = midnight
    elif period == "this_week":
        # weeks start on Sunday; weekday() counts from Monday
        start = midnight - timedelta(days=(now.weekday() + 1) % 7)
    elif period == "this_month":
        start = midnight.replace(day=1)
    elif period == "this_year":
        start = midnight.replace(month=1, day=1)
    else:
        start = EPOCH
    return TimeWindow(start=start, end=now)


def format_amount(value: float) -> str:
    formatted = f"{value:,.2f}"
    return formatted[:-3] if formatted.endswith(".00") else formatted


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_query_result(query: GeneratedQuery, result: QueryResult) -> str:
    query_type = query.query_type

    if query_type == "count_archived_transactions":
        return f"You have {_plural(result.count, 'archived transaction')}."
    if query_type == "count_remaining_installments":
        return f"You have {_plural(result.count, 'remaining installment')}."

    if query_type == "rank_accounts_by_expense":
        if not result:
            return "No expense data found for the specified period."
        lines = [f"{i}. {row.account_name}: {format_amount(row.total_expenses)}" for i, row in enumerate(result, 1)]
        return "Account Ranking by Expenses:\n\n" + "\n".join(lines) + "\n"

    if query_type == "total_spending_by_category":
        if not result:
            return "No spending data found for the specified period."
        lines = [f"• {row.category_name}: {format_amount(row.total_amount)}" for row in result]
        return "Spending by Category:\n\n" + "\n".join(lines) + "\n"

    if query_type == "total_credit_card_debt":
        if not result:
            return "No credit card debt found."
        lines = [f"• {row.credit_card_name}: {format_amount(row.total_debt)} {row.currency}" for row in result]
        return "Credit Card Debt:\n\n" + "\n".join(lines) + "\n"

    if query_type == "rank_accounts_by_transaction_count":
        if not result:
            return "No transaction data found for the specified period."
        lines = [
            f"{i}. {row.account_name}: {_plural(row.transaction_count, 'transaction')}"
            for i, row in enumerate(result, 1)
        ]
        return "Account Ranking by Transaction Count:\n\n" + "\n".join(lines) + "\n"

    return "I was able to fetch the data, but I don't know how to display it for this query type."


class QueryGenerator:
    def __init__(self, prompts: PromptManager, extractor: StructuredExtractor) -> None:
        self._prompts = prompts
        self._extractor = extractor

    def generate(self, question: str) -> GeneratedQuery:
        try:
            resolved = self._prompts.get_prompt_with_config(
                GENERATOR_PROMPT, fallback_config={"schema": QUERY_GENERATOR_JSON_SCHEMA}
            )
            query = self._extractor.extract(
                question,
                resolved.prompt,
                SCHEMA_NAME,
                first_present(resolved.schema, QUERY_GENERATOR_JSON_SCHEMA),
                GeneratedQuery,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Error generating structured query: %s", exc)
            raise QueryGenerationError("Failed to generate a valid structured query from your request.") from exc

        logger.info(
            "Generated query %s (period=%s, sort=%s, limit=%s, include_archived=%s, card=%s)",
            query.query_type,
            query.time_period,
            query.sort_order,
            query.limit,
            query.include_archived,
            query.credit_card_account_id,
        )
        return query


class QuerySafetyGate:
    """Two checks, both required: a fixed allow-list, then a model verdict."""

    def __init__(self, prompts: PromptManager, gateway: ModelGateway) -> None:
        self._prompts = prompts
        self._gateway = gateway

    def validate(self, question: str, query: GeneratedQuery) -> bool:
        if query.query_type not in ALLOWED_QUERY_TYPES:
            logger.error("Disallowed query type: %s", query.query_type)
            return False

        system_prompt = compile_prompt(
            self._prompts.get_prompt(VALIDATOR_PROMPT),
            {
                "user_request": question,
                "generated_query": json.dumps(query.model_dump(mode="json", exclude_none=True), indent=2),
            },
        )
        response = self._gateway.complete(
            VALIDATION_QUESTION,
            system_prompt,
            self._gateway.get_model("text"),
            temperature=0.1,
            max_tokens=10,
        )
        verdict = response.content.strip().upper()
        logger.info("Query validator verdict: %s", verdict)
        return verdict == SAFE_VERDICT


class QueryExecutor:
    """Runs a vetted query against exactly one read-only aggregation."""

    def __init__(self, session_factory: SessionFactory, clock: Callable[[], datetime] = datetime.now) -> None:
        self._session_factory = session_factory
        self._clock = clock
        self._handlers: dict[str, Callable[[Any, GeneratedQuery, TimeWindow], QueryResult]] = {
            "rank_accounts_by_expense": self._rank_accounts_by_expense,
            "total_spending_by_category": self._total_spending_by_category,
            "count_archived_transactions": self._count_archived_transactions,
            "count_remaining_installments": self._count_remaining_installments,
            "total_credit_card_debt": self._total_credit_card_debt,
            "rank_accounts_by_transaction_count": self._rank_accounts_by_transaction_count,
        }

    def execute(self, query: GeneratedQuery) -> QueryResult:
        handler = self._handlers.get(query.query_type)
        if handler is None:
            raise UnsafeQueryError(f'The query type "{query.query_type}" is not supported.')
        window = resolve_time_window(query.time_period, self._clock())
        with self._session_factory() as db:
            return handler(db, query, window)

    @staticmethod
    def _rank_accounts_by_expense(db, query: GeneratedQuery, window: TimeWindow) -> list[AccountExpenseRank]:
        return crud.rank_accounts_by_expenses(
            db,
            start_date=window.start.date(),
            end_date=window.end.date(),
            sort=query.sort_order or "desc",
            limit=query.limit,
            include_archived=query.include_archived,
        )

    @staticmethod
    def _total_spending_by_category(db, query: GeneratedQuery, window: TimeWindow) -> list[CategoryExpenseSummary]:
        return crud.summarise_expenses_by_category(db, window.start.date(), window.end.date())

    @staticmethod
    def _count_archived_transactions(db, query: GeneratedQuery, window: TimeWindow) -> CountResult:
        return CountResult(count=crud.count_archived_transactions(db))

    @staticmethod
    def _count_remaining_installments(db, query: GeneratedQuery, window: TimeWindow) -> CountResult:
        return CountResult(
            count=crud.count_remaining_installments(db, window.end.date(), query.credit_card_account_id)
        )

    @staticmethod
    def _total_credit_card_debt(db, query: GeneratedQuery, window: TimeWindow) -> list[CreditCardDebt]:
        return crud.total_credit_card_debt(db, window.end.date(), query.credit_card_account_id)

    @staticmethod
    def _rank_accounts_by_transaction_count(
        db, query: GeneratedQuery, window: TimeWindow
    ) -> list[AccountActivityRank]:
        return crud.rank_accounts_by_transaction_count(
            db,
            start_date=window.start.date(),
            end_date=window.end.date(),
            sort=query.sort_order or "desc",
            limit=query.limit,
            include_archived=query.include_archived,
        )


class AnalyticsService:
    def __init__(self, generator: QueryGenerator, gate: QuerySafetyGate, executor: QueryExecutor) -> None:
        self._generator = generator
        self._gate = gate
        self._executor = executor

    def answer(self, question: str) -> str:
        query = self._generator.generate(question)
        if not self._gate.validate(question, query):
            logger.error(
                "Rejected analytics query for question %r: %s",
                question,
                query.model_dump(mode="json"),
            )
            raise UnsafeQueryError("Query was deemed unsafe to run.")
        result = self._executor.execute(query)
        return format_query_result(query, result)
