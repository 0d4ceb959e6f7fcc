"""From a free-text message to a stored transaction: parse, gate, disambiguate, record."""

from __future__ import annotations

import logging
from typing import Callable

from ..domain.entities import Account, CreditCardPurchase, Transaction
from ..errors import UnresolvedReferenceError, UnsupportedTransactionTypeError
from ..llm.extraction import StructuredExtractor
from ..llm.prompts import PromptManager, first_present
from ..schemas import EXPENSE_PARSER_JSON_SCHEMA, BotReply, Choice, ParsedTransaction
from .expense_tracker import ExpenseTracker

logger = logging.getLogger(__name__)

PROMPT_NAME = "expense-parser"
SCHEMA_NAME = "expense_parser"
COMPLETE_EXPENSE_PREFIX = "complete_expense_account:"
DEFAULT_CONFIDENCE_THRESHOLD = 50.0
DEFAULT_CREDIT_CARD = "BBVA Credit Card"

PARSE_FAILED_MESSAGE = "❌ Could not understand the transaction format. Please try again with more details."

_ICONS = {
    "income": "💰",
    "transfer": "↔️",
    "expense": "💸",
    "credit_card_payment": "💳",
    "credit_card_purchase": "🛍️",
}

RecordResult = Transaction | list[CreditCardPurchase]


class TransactionParser:
    def __init__(self, prompts: PromptManager, extractor: StructuredExtractor) -> None:
        self._prompts = prompts
        self._extractor = extractor

    def parse(self, message: str) -> ParsedTransaction:
        resolved = self._prompts.get_prompt_with_config(
            PROMPT_NAME, fallback_config={"schema": EXPENSE_PARSER_JSON_SCHEMA}
        )
        parsed = self._extractor.extract(
            message,
            resolved.prompt,
            SCHEMA_NAME,
            first_present(resolved.schema, EXPENSE_PARSER_JSON_SCHEMA),
            ParsedTransaction,
        )
        logger.info(
            "Parsed %s: %s %s (%s), confidence %s%%",
            parsed.type,
            parsed.amount,
            parsed.currency,
            parsed.description,
            parsed.confidence,
        )
        return parsed


def format_success_message(type_: str, result: RecordResult) -> str:
    icon = _ICONS.get(type_, "✅")
    if isinstance(result, list):
        first = result[0]
        return (
            f"{icon} Credit card purchase recorded!\n\n"
            f"📝 {first.description}\n"
            f"💵 {first.amount:g} {first.currency} x {len(result)} installments\n"
            f"📅 Starting {first.date.isoformat()}"
        )
    return (
        f"{icon} Transaction recorded!\n\n"
        f"📝 {result.description}\n"
        f"💵 {result.to_amount:g} {result.to_currency}\n"
        f"📅 {result.date.isoformat()}"
    )


class TransactionFlow:
    def __init__(
        self,
        parser: TransactionParser,
        tracker: ExpenseTracker,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        default_credit_card: str = DEFAULT_CREDIT_CARD,
    ) -> None:
        self._parser = parser
        self._tracker = tracker
        self._confidence_threshold = confidence_threshold
        self._default_credit_card = default_credit_card
        self._handlers: dict[str, Callable[[ParsedTransaction], RecordResult]] = {
            "income": self._record_income,
            "transfer": self._record_transfer,
            "expense": self._record_expense,
            "credit_card_payment": self._record_credit_card_payment,
            "credit_card_purchase": self._record_credit_card_purchase,
        }

    def handle(self, message: str) -> BotReply:
        try:
            parsed = self._parser.parse(message)
        except Exception as exc:  # noqa: BLE001
            logger.error("Transaction parsing failed: %s", exc)
            return BotReply(text=PARSE_FAILED_MESSAGE)

        if parsed.confidence < self._confidence_threshold:
            logger.warning("Low confidence (%s%%); asking for clarification", parsed.confidence)
            return BotReply(
                text=(
                    f"❓ I'm not confident about this transaction ({parsed.confidence:g}% confidence). "
                    "Can you provide more details?"
                )
            )

        if parsed.type == "expense" and not parsed.from_account:
            choices = self._account_choices()
            if choices:
                logger.info("Expense without account; asking the user to pick one of %d", len(choices))
                return BotReply(
                    text=(
                        f'I see you spent {parsed.amount:g} {parsed.currency} on "{parsed.description}".\n'
                        "Which account did you use?"
                    ),
                    choices=choices,
                    pending=parsed,
                )

        return self._record_and_reply(parsed)

    def complete_expense(self, pending: ParsedTransaction, account_id: int) -> BotReply:
        account = self._tracker.find_account_by_id(account_id)
        if account is None:
            return BotReply(
                text="Sorry, I couldn't find that account. Please try again.",
                choices=self._account_choices(),
                pending=pending,
            )
        return self._record_and_reply(pending.model_copy(update={"from_account": account.name}))

    def record(self, parsed: ParsedTransaction) -> RecordResult:
        handler = self._handlers.get(parsed.type)
        if handler is None:
            raise UnsupportedTransactionTypeError(parsed.type)
        return handler(parsed)

    def _account_choices(self) -> list[Choice]:
        return [
            Choice(label=account.name, callback_data=f"{COMPLETE_EXPENSE_PREFIX}{account.id}")
            for account in self._tracker.list_accounts()
        ]

    def _record_and_reply(self, parsed: ParsedTransaction) -> BotReply:
        result = self.record(parsed)
        return BotReply(text=format_success_message(parsed.type, result))

    def _require_account(self, label: str, name: str | None) -> Account:
        account = self._tracker.find_account_by_name(name)
        if account is None:
            raise UnresolvedReferenceError(label, name)
        return account

    def _require_category_id(self, name: str | None) -> int | None:
        if not name:
            return None
        category = self._tracker.find_category_by_name(name)
        if category is None:
            raise UnresolvedReferenceError("Category", name)
        return category.id

    def _record_income(self, parsed: ParsedTransaction) -> Transaction:
        account = self._require_account("Account", parsed.to_account)
        return self._tracker.record_income(
            date=parsed.transaction_date,
            description=parsed.description,
            account_id=account.id,
            amount=parsed.amount,
            currency=parsed.currency,
        )

    def _record_transfer(self, parsed: ParsedTransaction) -> Transaction:
        source = self._require_account("From account", parsed.from_account)
        target = self._require_account("To account", parsed.to_account)
        return self._tracker.record_transfer(
            date=parsed.transaction_date,
            description=parsed.description,
            from_account_id=source.id,
            to_account_id=target.id,
            from_amount=parsed.from_amount or parsed.amount,
            to_amount=parsed.to_amount or parsed.amount,
        )

    def _record_expense(self, parsed: ParsedTransaction) -> Transaction:
        account = self._require_account("Account", parsed.from_account)
        category_id = self._require_category_id(parsed.category)
        return self._tracker.record_expense(
            date=parsed.transaction_date,
            description=parsed.description,
            account_id=account.id,
            amount=parsed.amount,
            category_id=category_id,
        )

    def _record_credit_card_payment(self, parsed: ParsedTransaction) -> Transaction:
        source = self._require_account("From account", parsed.from_account)
        card = self._require_account("Credit card", parsed.to_account)
        return self._tracker.record_credit_card_payment(
            from_account_id=source.id,
            credit_card_account_id=card.id,
            amount=parsed.amount,
            date=parsed.transaction_date,
            description=parsed.description,
        )

    def _record_credit_card_purchase(self, parsed: ParsedTransaction) -> list[CreditCardPurchase]:
        card = self._require_account("Credit card", parsed.to_account or self._default_credit_card)
        category_id = self._require_category_id(parsed.category)
        return self._tracker.record_credit_card_purchase(
            credit_card_account_id=card.id,
            date=parsed.transaction_date,
            description=parsed.description,
            total_amount=parsed.amount,
            currency=parsed.currency,
            total_installments=parsed.installments,
            category_id=category_id,
        )
