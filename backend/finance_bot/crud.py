from datetime import date

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.orm import Session

from .domain.entities import (
    AccountActivityRank,
    AccountBalance,
    AccountExpenseRank,
    CategoryExpenseSummary,
    CreditCardDebt,
    CurrencyTotal,
)
from .models import (
    AccountModel,
    AccountType,
    CategoryModel,
    CreditCardPurchaseModel,
    Currency,
    TransactionModel,
    TransactionType,
)

EPOCH = date(1970, 1, 1)
DEFAULT_RANK_LIMIT = 10
DESCRIPTION_MATCH_LIMIT = 10


# Accounts

def get_account(db: Session, account_id: int) -> AccountModel | None:
    return db.get(AccountModel, account_id)


def get_account_by_name(db: Session, name: str) -> AccountModel | None:
    return db.scalar(select(AccountModel).where(func.lower(AccountModel.name) == name.lower()))


def list_accounts(db: Session) -> list[AccountModel]:
    return list(db.scalars(select(AccountModel).order_by(AccountModel.name)))


def create_account(db: Session, name: str, type_: AccountType, currency: Currency) -> AccountModel:
    account = AccountModel(name=name, type=AccountType(type_), currency=Currency(currency))
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def list_account_balances(db: Session) -> list[AccountBalance]:
    incoming = func.coalesce(
        func.sum(case((TransactionModel.to_account_id == AccountModel.id, TransactionModel.to_amount), else_=0.0)),
        0.0,
    )
    outgoing = func.coalesce(
        func.sum(case((TransactionModel.from_account_id == AccountModel.id, TransactionModel.from_amount), else_=0.0)),
        0.0,
    )
    stmt = (
        select(AccountModel.id, AccountModel.name, AccountModel.currency, (incoming - outgoing).label("balance"))
        .outerjoin(
            TransactionModel,
            and_(
                or_(TransactionModel.to_account_id == AccountModel.id, TransactionModel.from_account_id == AccountModel.id),
                TransactionModel.is_archived.is_(False),
            ),
        )
        .group_by(AccountModel.id, AccountModel.name, AccountModel.currency)
        .order_by(AccountModel.name)
    )
    return [
        AccountBalance(
            account_id=row.id,
            account_name=row.name,
            currency=Currency(row.currency).value,
            balance=float(row.balance or 0.0),
        )
        for row in db.execute(stmt)
    ]


def rank_accounts_by_expenses(
    db: Session,
    start_date: date = EPOCH,
    end_date: date | None = None,
    sort: str = "desc",
    limit: int | None = None,
    include_archived: bool = False,
) -> list[AccountExpenseRank]:
    total = func.coalesce(func.sum(TransactionModel.from_amount), 0.0).label("total_expenses")
    stmt = (
        select(AccountModel.name, total)
        .join(TransactionModel, TransactionModel.from_account_id == AccountModel.id)
        .where(
            TransactionModel.type == TransactionType.EXPENSE,
            TransactionModel.date >= start_date,
            TransactionModel.date <= (end_date or date.today()),
        )
        .group_by(AccountModel.id, AccountModel.name)
        .order_by(total.asc() if sort == "asc" else total.desc())
        .limit(limit or DEFAULT_RANK_LIMIT)
    )
    if not include_archived:
        stmt = stmt.where(TransactionModel.is_archived.is_(False))
    return [
        AccountExpenseRank(account_name=row.name, total_expenses=float(row.total_expenses or 0.0))
        for row in db.execute(stmt)
    ]


def rank_accounts_by_transaction_count(
    db: Session,
    start_date: date = EPOCH,
    end_date: date | None = None,
    sort: str = "desc",
    limit: int | None = None,
    include_archived: bool = False,
) -> list[AccountActivityRank]:
    count = func.count(TransactionModel.id).label("transaction_count")
    stmt = (
        select(AccountModel.name, count)
        .join(
            TransactionModel,
            or_(TransactionModel.from_account_id == AccountModel.id, TransactionModel.to_account_id == AccountModel.id),
        )
        .where(TransactionModel.date >= start_date, TransactionModel.date <= (end_date or date.today()))
        .group_by(AccountModel.id, AccountModel.name)
        .order_by(count.asc() if sort == "asc" else count.desc())
        .limit(limit or DEFAULT_RANK_LIMIT)
    )
    if not include_archived:
        stmt = stmt.where(TransactionModel.is_archived.is_(False))
    return [
        AccountActivityRank(account_name=row.name, transaction_count=int(row.transaction_count or 0))
        for row in db.execute(stmt)
    ]


# Categories

def get_category(db: Session, category_id: int) -> CategoryModel | None:
    return db.get(CategoryModel, category_id)


def get_category_by_name(db: Session, name: str) -> CategoryModel | None:
    return db.scalar(select(CategoryModel).where(func.lower(CategoryModel.name) == name.lower()))


def list_categories(db: Session) -> list[CategoryModel]:
    return list(db.scalars(select(CategoryModel).order_by(CategoryModel.name)))


def create_category(db: Session, name: str) -> CategoryModel:
    category = CategoryModel(name=name)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def summarise_expenses_by_category(db: Session, start_date: date, end_date: date) -> list[CategoryExpenseSummary]:
    total = func.sum(TransactionModel.from_amount).label("total_amount")
    stmt = (
        select(
            CategoryModel.name,
            total,
            TransactionModel.from_currency,
            func.count(TransactionModel.id).label("transaction_count"),
        )
        .join(CategoryModel, TransactionModel.category_id == CategoryModel.id)
        .where(
            TransactionModel.type == TransactionType.EXPENSE,
            TransactionModel.date >= start_date,
            TransactionModel.date <= end_date,
            TransactionModel.is_archived.is_(False),
        )
        .group_by(CategoryModel.name, TransactionModel.from_currency)
        .order_by(total.desc())
    )
    return [
        CategoryExpenseSummary(
            category_name=row.name,
            total_amount=float(row.total_amount or 0.0),
            currency=Currency(row.from_currency).value if row.from_currency else "",
            transaction_count=int(row.transaction_count),
        )
        for row in db.execute(stmt)
    ]


# Transactions

def create_transaction(
    db: Session,
    *,
    date: date,
    description: str,
    type_: TransactionType,
    to_amount: float,
    to_currency: Currency,
    from_amount: float | None = None,
    from_currency: Currency | None = None,
    from_account_id: int | None = None,
    to_account_id: int | None = None,
    category_id: int | None = None,
) -> TransactionModel:
    exchange_rate = to_amount / from_amount if from_amount and to_amount else 1.0
    transaction = TransactionModel(
        date=date,
        description=description,
        type=TransactionType(type_),
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        from_amount=from_amount,
        to_amount=to_amount,
        from_currency=Currency(from_currency) if from_currency else None,
        to_currency=Currency(to_currency),
        exchange_rate=exchange_rate,
        category_id=category_id,
    )
    db.add(transaction)
    db.commit()
    db.refresh(transaction)
    return transaction


def list_recent_transactions(db: Session, limit: int = 20) -> list[TransactionModel]:
    stmt = (
        select(TransactionModel)
        .where(TransactionModel.is_archived.is_(False))
        .order_by(TransactionModel.date.desc(), TransactionModel.created_at.desc(), TransactionModel.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def find_transactions_by_description(
    db: Session, description: str, include_archived: bool = False
) -> list[TransactionModel]:
    stmt = select(TransactionModel).where(TransactionModel.description.ilike(f"%{description}%"))
    if not include_archived:
        stmt = stmt.where(TransactionModel.is_archived.is_(False))
    stmt = stmt.order_by(
        TransactionModel.date.desc(), TransactionModel.created_at.desc(), TransactionModel.id.desc()
    ).limit(DESCRIPTION_MATCH_LIMIT)
    return list(db.scalars(stmt))


def archive_transaction(db: Session, transaction_id: int) -> bool:
    result = db.execute(
        update(TransactionModel)
        .where(TransactionModel.id == transaction_id)
        .values(is_archived=True)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    return bool(result.rowcount)


def count_archived_transactions(db: Session) -> int:
    return db.scalar(
        select(func.count(TransactionModel.id)).where(TransactionModel.is_archived.is_(True))
    ) or 0


def total_by_type(db: Session, type_: TransactionType, start_date: date, end_date: date) -> list[CurrencyTotal]:
    stmt = (
        select(TransactionModel.from_currency, func.sum(TransactionModel.from_amount).label("total"))
        .where(
            TransactionModel.type == TransactionType(type_),
            TransactionModel.date >= start_date,
            TransactionModel.date <= end_date,
            TransactionModel.is_archived.is_(False),
        )
        .group_by(TransactionModel.from_currency)
    )
    return [
        CurrencyTotal(currency=Currency(row.from_currency).value if row.from_currency else "", total=float(row.total or 0.0))
        for row in db.execute(stmt)
    ]


# Credit card purchases

def create_credit_card_purchase(
    db: Session,
    *,
    credit_card_account_id: int,
    date: date,
    description: str,
    amount: float,
    currency: Currency,
    installment_number: int,
    total_installments: int,
    purchase_group_id: str,
    category_id: int | None = None,
) -> CreditCardPurchaseModel:
    purchase = CreditCardPurchaseModel(
        credit_card_account_id=credit_card_account_id,
        date=date,
        description=description,
        amount=amount,
        currency=Currency(currency),
        category_id=category_id,
        installment_number=installment_number,
        total_installments=total_installments,
        purchase_group_id=purchase_group_id,
    )
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    return purchase


def list_purchase_group(db: Session, purchase_group_id: str) -> list[CreditCardPurchaseModel]:
    stmt = (
        select(CreditCardPurchaseModel)
        .where(CreditCardPurchaseModel.purchase_group_id == purchase_group_id)
        .order_by(CreditCardPurchaseModel.installment_number)
    )
    return list(db.scalars(stmt))


def count_remaining_installments(db: Session, today: date, credit_card_account_id: int | None = None) -> int:
    stmt = select(func.count(CreditCardPurchaseModel.id)).where(CreditCardPurchaseModel.date >= today)
    if credit_card_account_id:
        stmt = stmt.where(CreditCardPurchaseModel.credit_card_account_id == credit_card_account_id)
    return db.scalar(stmt) or 0


def total_credit_card_debt(
    db: Session, today: date, credit_card_account_id: int | None = None
) -> list[CreditCardDebt]:
    stmt = (
        select(
            AccountModel.name,
            func.sum(CreditCardPurchaseModel.amount).label("total_debt"),
            CreditCardPurchaseModel.currency,
        )
        .join(AccountModel, CreditCardPurchaseModel.credit_card_account_id == AccountModel.id)
        .where(CreditCardPurchaseModel.date >= today)
        .group_by(AccountModel.id, AccountModel.name, CreditCardPurchaseModel.currency)
        .order_by(AccountModel.name)
    )
    if credit_card_account_id:
        stmt = stmt.where(CreditCardPurchaseModel.credit_card_account_id == credit_card_account_id)
    return [
        CreditCardDebt(
            credit_card_name=row.name,
            total_debt=float(row.total_debt or 0.0),
            currency=Currency(row.currency).value,
        )
        for row in db.execute(stmt)
    ]
