from datetime import date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class AccountType(str, PyEnum):
    BANK = "bank"
    CRYPTO = "crypto"
    CREDIT_CARD = "credit_card"


class Currency(str, PyEnum):
    EUR = "EUR"
    USDC = "USDC"
    ARS = "ARS"
    USD = "USD"


class TransactionType(str, PyEnum):
    INCOME = "income"
    TRANSFER = "transfer"
    EXPENSE = "expense"
    CREDIT_CARD_PAYMENT = "credit_card_payment"


class AccountModel(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    type: Mapped[AccountType] = mapped_column(Enum(AccountType, name="account_type"), nullable=False)
    currency: Mapped[Currency] = mapped_column(Enum(Currency, name="currency_code"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CategoryModel(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class TransactionModel(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    from_account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), nullable=True)
    to_account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id"), nullable=True)
    from_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    to_amount: Mapped[float] = mapped_column(Float, nullable=False)
    from_currency: Mapped[Currency | None] = mapped_column(Enum(Currency, name="currency_code"), nullable=True)
    to_currency: Mapped[Currency] = mapped_column(Enum(Currency, name="currency_code"), nullable=False)
    exchange_rate: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    type: Mapped[TransactionType] = mapped_column(Enum(TransactionType, name="transaction_type"), nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    from_account: Mapped[AccountModel | None] = relationship("AccountModel", foreign_keys=[from_account_id])
    to_account: Mapped[AccountModel | None] = relationship("AccountModel", foreign_keys=[to_account_id])
    category: Mapped[CategoryModel | None] = relationship("CategoryModel")

    __table_args__ = (
        CheckConstraint("to_amount >= 0", name="ck_transactions_to_amount_positive"),
    )


class CreditCardPurchaseModel(Base):
    __tablename__ = "credit_card_purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    credit_card_account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Currency] = mapped_column(Enum(Currency, name="currency_code"), nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"), nullable=True)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_group_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    credit_card: Mapped[AccountModel] = relationship("AccountModel")
    category: Mapped[CategoryModel | None] = relationship("CategoryModel")

    __table_args__ = (
        CheckConstraint("installment_number >= 1", name="ck_purchases_installment_number"),
        CheckConstraint("amount >= 0", name="ck_purchases_amount_non_negative"),
    )
