import logging
import re

from ..schemas import BotReply, Choice
from .expense_tracker import ExpenseTracker

logger = logging.getLogger(__name__)

CONFIRM_PREFIX = "archive_confirm:"
SELECT_PREFIX = "archive_select:"
CANCEL_DATA = "archive_cancel"

_DESCRIPTION_PATTERN = re.compile(r"(?:delete|archive)\s+(?:the\s+)?(.*?)(?:\s+expense)?\s*$", re.IGNORECASE)


def extract_archive_description(message: str) -> str:
    """Pull the transaction description out of e.g. "delete the coffee expense"."""
    match = _DESCRIPTION_PATTERN.search(message)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return message.strip()


class ArchiveFlow:
    def __init__(self, tracker: ExpenseTracker) -> None:
        self._tracker = tracker

    def handle(self, message: str) -> BotReply:
        description = extract_archive_description(message)
        if not description:
            return BotReply(text="Please specify which transaction you would like to archive.")

        matches = self._tracker.find_transactions_by_description(description)
        logger.info("Archive request for %r matched %d transaction(s)", description, len(matches))

        if not matches:
            return BotReply(text=f'No non-archived transaction found matching "{description}".')

        if len(matches) == 1:
            transaction = matches[0]
            return BotReply(
                text=(
                    "Are you sure you want to archive this transaction?\n\n"
                    f"📝 {transaction.description}\n"
                    f"💵 {transaction.to_amount:g} {transaction.to_currency} on {transaction.date.isoformat()}"
                ),
                choices=[
                    Choice(label="Yes", callback_data=f"{CONFIRM_PREFIX}{transaction.id}"),
                    Choice(label="No", callback_data=CANCEL_DATA),
                ],
                columns=2,
            )

        lines = [f'I found multiple transactions matching "{description}". Please select one to archive:', ""]
        lines += [f"{index}. {transaction.get_details()}" for index, transaction in enumerate(matches, 1)]
        return BotReply(
            text="\n".join(lines),
            choices=[
                Choice(label=str(index), callback_data=f"{SELECT_PREFIX}{transaction.id}")
                for index, transaction in enumerate(matches, 1)
            ],
            columns=2,
        )

    def confirm(self, transaction_id: int) -> BotReply:
        if not self._tracker.archive_transaction(transaction_id):
            return BotReply(text=f"❌ Transaction ID {transaction_id} was not found.")
        return BotReply(text=f"✅ Transaction ID {transaction_id} has been archived.")

    @staticmethod
    def cancel() -> BotReply:
        return BotReply(text="Archiving cancelled.")
