import calendar
from datetime import date
from typing import Callable

from .expense_tracker import ExpenseTracker

_TYPE_ICONS = {
    "income": "💰",
    "transfer": "↔️",
    "expense": "💸",
    "credit_card_payment": "💳",
}


def _month_bounds(today: date) -> tuple[date, date]:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


class ReportService:
    """Fixed, model-free reports: balances, recent activity and the monthly summary."""

    def __init__(self, tracker: ExpenseTracker, recent_limit: int = 10, today: Callable[[], date] = date.today) -> None:
        self._tracker = tracker
        self._recent_limit = recent_limit
        self._today = today

    def balances(self) -> str:
        balances = self._tracker.account_balances()
        if not balances:
            return "No accounts found."
        lines = ["💰 *Account Balances*", ""]
        for balance in balances:
            status = "✅" if balance.balance >= 0 else "❌"
            lines.append(f"{status} *{balance.account_name}*")
            lines.append(f"   {balance.balance:,.2f} {balance.currency}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def recent_transactions(self) -> str:
        transactions = self._tracker.recent_transactions(self._recent_limit)
        if not transactions:
            return "No recent transactions found."
        lines = ["📊 *Recent Transactions*", ""]
        for tx in transactions:
            detail = f"   {tx.to_amount:g} {tx.to_currency}"
            if tx.from_account_name:
                detail += f" from {tx.from_account_name}"
            if tx.to_account_name:
                detail += f" to {tx.to_account_name}"
            if tx.category_name:
                detail += f" ({tx.category_name})"
            lines.append(f"{_TYPE_ICONS.get(tx.type, '📝')} *{tx.description}*")
            lines.append(detail)
            lines.append(f"   {tx.date.isoformat()}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def monthly_report(self) -> str:
        today = self._today()
        start, end = _month_bounds(today)
        totals = self._tracker.total_expenses(start, end)
        by_category = self._tracker.expenses_by_category(start, end)

        lines = [f"📊 *Monthly Report - {today.strftime('%B %Y')}*", "", "*Total Expenses:*"]
        if totals:
            lines += [f"   {total.total:,.2f} {total.currency}" for total in totals]
        else:
            lines.append("   No expenses this month")
        if by_category:
            lines += ["", "*By Category:*"]
            lines += [f"   {row.category_name}: {row.total_amount:,.2f} {row.currency}" for row in by_category]
        return "\n".join(lines)
