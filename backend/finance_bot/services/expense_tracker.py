"""Persistence operations behind the transaction and report flows."""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date

from .. import crud
from ..db import SessionFactory
from ..domain.entities import (
    Account,
    AccountBalance,
    Category,
    CategoryExpenseSummary,
    CreditCardPurchase,
    CurrencyTotal,
    Transaction,
    domain_account_from_model,
    domain_category_from_model,
    domain_purchase_from_model,
    domain_transaction_from_model,
)
from ..errors import AccountTypeError, UnresolvedReferenceError
from ..models import AccountType, Currency, TransactionType

logger = logging.getLogger(__name__)


def add_months(base: date, months: int) -> date:
    """Shift ``base`` by whole months, clamping the day to the target month's end."""
    month_index = base.year * 12 + base.month - 1 + months
    year = month_index // 12
    month = month_index % 12 + 1
    day = min(base.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def split_installments(total: float, count: int) -> list[float]:
    """Split ``total`` into ``count`` cent-rounded parts that sum back to ``total``.

    Every share is rounded down to the cent and the remainder lands on the
    last part, so no part is ever negative.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    cents = round(total * 100)
    share = cents // count
    last = cents - share * (count - 1)
    return [share / 100] * (count - 1) + [last / 100]


class ExpenseTracker:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # Lookups

    def find_account_by_name(self, name: str | None) -> Account | None:
        if not name:
            return None
        with self._session_factory() as db:
            model = crud.get_account_by_name(db, name)
            return domain_account_from_model(model) if model else None

    def find_account_by_id(self, account_id: int) -> Account | None:
        with self._session_factory() as db:
            model = crud.get_account(db, account_id)
            return domain_account_from_model(model) if model else None

    def find_category_by_name(self, name: str | None) -> Category | None:
        if not name:
            return None
        with self._session_factory() as db:
            model = crud.get_category_by_name(db, name)
            return domain_category_from_model(model) if model else None

    def list_accounts(self) -> list[Account]:
        with self._session_factory() as db:
            return [domain_account_from_model(model) for model in crud.list_accounts(db)]

    def list_categories(self) -> list[Category]:
        with self._session_factory() as db:
            return [domain_category_from_model(model) for model in crud.list_categories(db)]

    # Writes

    def record_income(
        self, *, date: date, description: str, account_id: int, amount: float, currency: str
    ) -> Transaction:
        with self._session_factory() as db:
            account = crud.get_account(db, account_id)
            if account is None:
                raise UnresolvedReferenceError("Account", account_id)
            model = crud.create_transaction(
                db,
                date=date,
                description=description,
                type_=TransactionType.INCOME,
                to_account_id=account.id,
                to_amount=amount,
                to_currency=Currency(currency),
                from_amount=amount,
                from_currency=Currency(currency),
            )
            logger.info("Recorded income %s of %s %s into %s", model.id, amount, currency, account.name)
            return domain_transaction_from_model(model)

    def record_transfer(
        self,
        *,
        date: date,
        description: str,
        from_account_id: int,
        to_account_id: int,
        from_amount: float,
        to_amount: float,
    ) -> Transaction:
        with self._session_factory() as db:
            source = crud.get_account(db, from_account_id)
            target = crud.get_account(db, to_account_id)
            if source is None:
                raise UnresolvedReferenceError("From account", from_account_id)
            if target is None:
                raise UnresolvedReferenceError("To account", to_account_id)
            model = crud.create_transaction(
                db,
                date=date,
                description=description,
                type_=TransactionType.TRANSFER,
                from_account_id=source.id,
                to_account_id=target.id,
                from_amount=from_amount,
                to_amount=to_amount,
                from_currency=source.currency,
                to_currency=target.currency,
            )
            logger.info("Recorded transfer %s from %s to %s", model.id, source.name, target.name)
            return domain_transaction_from_model(model)

    def record_expense(
        self,
        *,
        date: date,
        description: str,
        account_id: int,
        amount: float,
        category_id: int | None = None,
    ) -> Transaction:
        with self._session_factory() as db:
            account = crud.get_account(db, account_id)
            if account is None:
                raise UnresolvedReferenceError("Account", account_id)
            if category_id is not None and crud.get_category(db, category_id) is None:
                raise UnresolvedReferenceError("Category", category_id)
            model = crud.create_transaction(
                db,
                date=date,
                description=description,
                type_=TransactionType.EXPENSE,
                from_account_id=account.id,
                from_amount=amount,
                to_amount=amount,
                from_currency=account.currency,
                to_currency=account.currency,
                category_id=category_id,
            )
            logger.info("Recorded expense %s of %s %s from %s", model.id, amount, account.currency.value, account.name)
            return domain_transaction_from_model(model)

    def record_credit_card_payment(
        self,
        *,
        from_account_id: int,
        credit_card_account_id: int,
        amount: float,
        date: date,
        description: str = "Credit card payment",
    ) -> Transaction:
        with self._session_factory() as db:
            source = crud.get_account(db, from_account_id)
            card = crud.get_account(db, credit_card_account_id)
            if source is None:
                raise UnresolvedReferenceError("From account", from_account_id)
            if card is None:
                raise UnresolvedReferenceError("Credit card", credit_card_account_id)
            if card.type != AccountType.CREDIT_CARD:
                raise AccountTypeError(f"Account {card.name} is not a credit card")
            model = crud.create_transaction(
                db,
                date=date,
                description=description,
                type_=TransactionType.CREDIT_CARD_PAYMENT,
                from_account_id=source.id,
                to_account_id=card.id,
                from_amount=amount,
                to_amount=amount,
                from_currency=source.currency,
                to_currency=card.currency,
            )
            logger.info("Recorded credit card payment %s to %s", model.id, card.name)
            return domain_transaction_from_model(model)

    def record_credit_card_purchase(
        self,
        *,
        credit_card_account_id: int,
        date: date,
        description: str,
        total_amount: float,
        currency: str,
        total_installments: int = 1,
        category_id: int | None = None,
    ) -> list[CreditCardPurchase]:
        """Store one row per installment, all sharing a new purchase group id.

        Rows are committed one by one; a failure part-way leaves the earlier
        installments in place.
        """
        with self._session_factory() as db:
            card = crud.get_account(db, credit_card_account_id)
            if card is None:
                raise UnresolvedReferenceError("Credit card", credit_card_account_id)
            if card.type != AccountType.CREDIT_CARD:
                raise AccountTypeError(f"Account {card.name} is not a credit card")
            if category_id is not None and crud.get_category(db, category_id) is None:
                raise UnresolvedReferenceError("Category", category_id)

            group_id = str(uuid.uuid4())
            purchases: list[CreditCardPurchase] = []
            for number, amount in enumerate(split_installments(total_amount, total_installments), start=1):
                model = crud.create_credit_card_purchase(
                    db,
                    credit_card_account_id=card.id,
                    date=add_months(date, number - 1),
                    description=f"{description} ({number}/{total_installments})",
                    amount=amount,
                    currency=Currency(currency),
                    category_id=category_id,
                    installment_number=number,
                    total_installments=total_installments,
                    purchase_group_id=group_id,
                )
                purchases.append(domain_purchase_from_model(model))
            logger.info("Recorded %d installment(s) on %s (group %s)", len(purchases), card.name, group_id)
            return purchases

    def archive_transaction(self, transaction_id: int) -> bool:
        with self._session_factory() as db:
            archived = crud.archive_transaction(db, transaction_id)
        if archived:
            logger.info("Archived transaction %s", transaction_id)
        else:
            logger.warning("Transaction %s not found for archiving", transaction_id)
        return archived

    # Reads

    def account_balances(self) -> list[AccountBalance]:
        with self._session_factory() as db:
            return crud.list_account_balances(db)

    def recent_transactions(self, limit: int = 20) -> list[Transaction]:
        with self._session_factory() as db:
            return [domain_transaction_from_model(model) for model in crud.list_recent_transactions(db, limit)]

    def find_transactions_by_description(self, description: str) -> list[Transaction]:
        with self._session_factory() as db:
            return [
                domain_transaction_from_model(model)
                for model in crud.find_transactions_by_description(db, description)
            ]

    def expenses_by_category(self, start_date: date, end_date: date) -> list[CategoryExpenseSummary]:
        with self._session_factory() as db:
            return crud.summarise_expenses_by_category(db, start_date, end_date)

    def total_expenses(self, start_date: date, end_date: date) -> list[CurrencyTotal]:
        with self._session_factory() as db:
            return crud.total_by_type(db, TransactionType.EXPENSE, start_date, end_date)
