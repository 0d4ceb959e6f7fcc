"""Routes an inbound message or button press to the flow that answers it."""

from __future__ import annotations

import logging
from typing import Callable

from .errors import FinanceBotError
from .llm.gateway import ModelGateway
from .llm.orchestrator import IntentOrchestrator
from .llm.prompts import PromptManager
from .schemas import BotReply, ParsedTransaction
from .services.analytics import AnalyticsService
from .services.archive import CANCEL_DATA, CONFIRM_PREFIX, SELECT_PREFIX, ArchiveFlow
from .services.reports import ReportService
from .services.transaction_flow import COMPLETE_EXPENSE_PREFIX, TransactionFlow

logger = logging.getLogger(__name__)

CHAT_PROMPT = "chat-assistant"
EXPIRED_MESSAGE = "This request has expired. Please send the transaction again."

Handler = Callable[[str], BotReply]


class MessageRouter:
    def __init__(
        self,
        orchestrator: IntentOrchestrator,
        transactions: TransactionFlow,
        analytics: AnalyticsService,
        archive: ArchiveFlow,
        reports: ReportService,
        prompts: PromptManager,
        gateway: ModelGateway,
    ) -> None:
        self._orchestrator = orchestrator
        self._transactions = transactions
        self._analytics = analytics
        self._archive = archive
        self._reports = reports
        self._prompts = prompts
        self._gateway = gateway
        # intent -> (handler, prefix for errors shown to the user)
        self._routes: dict[str, tuple[Handler, str]] = {
            "track_expense": (self._transactions.handle, "❌ Error processing transaction"),
            "track_income": (self._transactions.handle, "❌ Error processing transaction"),
            "query_balance": (lambda _message: self.balances(), "❌ Error retrieving balances"),
            "query_transactions": (
                lambda _message: self.recent_transactions(),
                "❌ Error retrieving transactions",
            ),
            "query_report": (lambda message: BotReply(text=self._analytics.answer(message)), "❌ Error processing your query"),
            "archive_transaction": (self._archive.handle, "❌ Error processing your archive request"),
        }

    def route(self, message: str) -> BotReply:
        decision = self._orchestrator.analyze_intent(message)
        handler, error_prefix = self._routes.get(decision.intent, (self.chat, "❌ Sorry"))
        if decision.intent not in self._routes:
            logger.info("No dedicated route for %s; answering as general chat", decision.intent)
        try:
            return handler(message)
        except FinanceBotError as exc:
            logger.error("%s handler failed: %s", decision.intent, exc)
            return BotReply(text=f"{error_prefix}: {exc}")

    def chat(self, message: str) -> BotReply:
        system_prompt = self._prompts.get_prompt(CHAT_PROMPT)
        return BotReply(text=self._gateway.complete(message, system_prompt).content)

    def handle_callback(self, data: str, pending: ParsedTransaction | None = None) -> BotReply:
        if data.startswith(COMPLETE_EXPENSE_PREFIX):
            if pending is None:
                return BotReply(text=EXPIRED_MESSAGE)
            try:
                return self._transactions.complete_expense(pending, _callback_id(data))
            except FinanceBotError as exc:
                logger.error("Error completing expense from callback: %s", exc)
                return BotReply(text="❌ Sorry, there was an error saving your expense.", pending=pending)

        if data.startswith(CONFIRM_PREFIX) or data.startswith(SELECT_PREFIX):
            return self._archive.confirm(_callback_id(data))

        if data == CANCEL_DATA:
            return self._archive.cancel()

        logger.warning("Unknown callback data: %s", data)
        return BotReply(text="Sorry, I don't know how to handle that action.")

    def balances(self) -> BotReply:
        return BotReply(text=self._reports.balances(), markdown=True)

    def recent_transactions(self) -> BotReply:
        return BotReply(text=self._reports.recent_transactions(), markdown=True)

    def monthly_report(self) -> BotReply:
        return BotReply(text=self._reports.monthly_report(), markdown=True)


def _callback_id(data: str) -> int:
    return int(data.rsplit(":", 1)[1])
