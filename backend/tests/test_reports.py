from datetime import date

from finance_bot.db import SessionFactory
from finance_bot.services.expense_tracker import ExpenseTracker
from finance_bot.services.reports import ReportService


def test_empty_database(session_factory: SessionFactory) -> None:
    reports = ReportService(ExpenseTracker(session_factory), today=lambda: date(2025, 3, 20))

    assert reports.balances() == "No accounts found."
    assert reports.recent_transactions() == "No recent transactions found."
    assert reports.monthly_report() == (
        "📊 *Monthly Report - March 2025*\n\n*Total Expenses:*\n   No expenses this month"
    )


def test_balances_mark_negative_accounts(tracker: ExpenseTracker, seeded: dict[str, int]) -> None:
    tracker.record_income(
        date=date(2025, 3, 1), description="Salary", account_id=seeded["santander"], amount=2450, currency="EUR"
    )
    tracker.record_expense(date=date(2025, 3, 2), description="Snacks", account_id=seeded["wallet"], amount=20)

    assert ReportService(tracker).balances() == (
        "💰 *Account Balances*\n\n"
        "✅ *BBVA Credit Card*\n   0.00 ARS\n\n"
        "✅ *Santander*\n   2,450.00 EUR\n\n"
        "❌ *Wallet*\n   -20.00 USD"
    )


def test_recent_transactions_show_accounts_and_category(tracker: ExpenseTracker, seeded: dict[str, int]) -> None:
    tracker.record_expense(
        date=date(2025, 3, 2),
        description="Market",
        account_id=seeded["santander"],
        amount=30,
        category_id=seeded["food"],
    )

    assert ReportService(tracker).recent_transactions() == (
        "📊 *Recent Transactions*\n\n"
        "💸 *Market*\n"
        "   30 EUR from Santander (Food & Groceries)\n"
        "   2025-03-02"
    )


def test_monthly_report_totals_and_categories(tracker: ExpenseTracker, seeded: dict[str, int]) -> None:
    tracker.record_expense(
        date=date(2025, 3, 2), description="Market", account_id=seeded["santander"], amount=30, category_id=seeded["food"]
    )
    tracker.record_expense(date=date(2025, 3, 9), description="Taxi", account_id=seeded["santander"], amount=12)
    tracker.record_expense(date=date(2025, 2, 9), description="February", account_id=seeded["santander"], amount=99)

    report = ReportService(tracker, today=lambda: date(2025, 3, 20)).monthly_report()

    assert report == (
        "📊 *Monthly Report - March 2025*\n\n"
        "*Total Expenses:*\n"
        "   42.00 EUR\n\n"
        "*By Category:*\n"
        "   Food & Groceries: 30.00 EUR"
    )
