from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(slots=True)
class Account:
    id: int
    name: str
    type: str
    currency: str

    @property
    def is_credit_card(self) -> bool:
        return self.type == "credit_card"


@dataclass(slots=True)
class Category:
    id: int
    name: str


@dataclass(slots=True)
class Transaction:
    """A persisted transaction with account and category names resolved."""

    id: int
    date: date
    description: str
    type: str
    to_amount: float
    to_currency: str
    from_amount: float | None = None
    from_currency: str | None = None
    from_account_name: str | None = None
    to_account_name: str | None = None
    category_name: str | None = None
    exchange_rate: float = 1.0
    is_archived: bool = False

    def get_details(self) -> str:
        """Return a one-line, human-readable representation."""
        return f"{self.description} ({self.to_amount:g} {self.to_currency} on {self.date.isoformat()})"


@dataclass(slots=True)
class CreditCardPurchase:
    id: int
    credit_card_account_id: int
    date: date
    description: str
    amount: float
    currency: str
    installment_number: int
    total_installments: int
    purchase_group_id: str
    category_id: int | None = None


@dataclass(slots=True)
class AccountBalance:
    account_id: int
    account_name: str
    currency: str
    balance: float


@dataclass(slots=True)
class CurrencyTotal:
    currency: str
    total: float


@dataclass(slots=True)
class CategoryExpenseSummary:
    category_name: str
    total_amount: float
    currency: str
    transaction_count: int


@dataclass(slots=True)
class AccountExpenseRank:
    account_name: str
    total_expenses: float


@dataclass(slots=True)
class AccountActivityRank:
    account_name: str
    transaction_count: int


@dataclass(slots=True)
class CreditCardDebt:
    credit_card_name: str
    total_debt: float
    currency: str


@dataclass(slots=True)
class CountResult:
    count: int


def domain_account_from_model(model: object) -> Account:
    from ..models import AccountModel

    if not isinstance(model, AccountModel):
        raise TypeError("Expected AccountModel instance.")
    return Account(id=model.id, name=model.name, type=model.type.value, currency=model.currency.value)


def domain_category_from_model(model: object) -> Category:
    from ..models import CategoryModel

    if not isinstance(model, CategoryModel):
        raise TypeError("Expected CategoryModel instance.")
    return Category(id=model.id, name=model.name)


def domain_transaction_from_model(model: object) -> Transaction:
    from ..models import TransactionModel

    if not isinstance(model, TransactionModel):
        raise TypeError("Expected TransactionModel instance.")

    return Transaction(
        id=model.id,
        date=model.date,
        description=model.description,
        type=model.type.value,
        to_amount=float(model.to_amount),
        to_currency=model.to_currency.value,
        from_amount=float(model.from_amount) if model.from_amount is not None else None,
        from_currency=model.from_currency.value if model.from_currency else None,
        from_account_name=model.from_account.name if model.from_account else None,
        to_account_name=model.to_account.name if model.to_account else None,
        category_name=model.category.name if model.category else None,
        exchange_rate=float(model.exchange_rate),
        is_archived=bool(model.is_archived),
    )


def domain_purchase_from_model(model: object) -> CreditCardPurchase:
    from ..models import CreditCardPurchaseModel

    if not isinstance(model, CreditCardPurchaseModel):
        raise TypeError("Expected CreditCardPurchaseModel instance.")

    return CreditCardPurchase(
        id=model.id,
        credit_card_account_id=model.credit_card_account_id,
        date=model.date,
        description=model.description,
        amount=float(model.amount),
        currency=model.currency.value,
        installment_number=model.installment_number,
        total_installments=model.total_installments,
        purchase_group_id=model.purchase_group_id,
        category_id=model.category_id,
    )
