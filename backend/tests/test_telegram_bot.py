import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.constants import ParseMode
from telegram.ext import ApplicationHandlerStop

from finance_bot.config import Settings
from finance_bot.schemas import BotReply, Choice, ParsedTransaction
from finance_bot.telegram_bot import (
    PENDING_TX_KEY,
    ROUTER_KEY,
    SETTINGS_KEY,
    authorize,
    build_keyboard,
    handle_callback,
    handle_text,
)

PENDING = ParsedTransaction(
    type="expense", description="Coffee", amount=4.5, currency="USD", date="2025-03-14", confidence=90
)


def make_context(router: MagicMock | None = None, settings: Settings | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        bot=AsyncMock(),
        bot_data={ROUTER_KEY: router or MagicMock(), SETTINGS_KEY: settings or Settings()},
        user_data={},
    )


def make_update(user_id: int = 42, text: str = "hello") -> SimpleNamespace:
    return SimpleNamespace(
        effective_user=SimpleNamespace(id=user_id, username="someone"),
        effective_chat=SimpleNamespace(id=1000),
        message=SimpleNamespace(text=text, reply_text=AsyncMock()),
        callback_query=None,
    )


def test_build_keyboard_rows() -> None:
    choices = [Choice(label=str(i), callback_data=f"archive_select:{i}") for i in range(1, 4)]

    keyboard = build_keyboard(choices, columns=2)

    assert [[button.text for button in row] for row in keyboard.inline_keyboard] == [["1", "2"], ["3"]]
    assert keyboard.inline_keyboard[1][0].callback_data == "archive_select:3"
    assert build_keyboard([]) is None


def test_authorized_user_passes() -> None:
    context = make_context(settings=Settings(authorized_user_id=42))

    asyncio.run(authorize(make_update(user_id=42), context))

    context.bot.send_message.assert_not_called()


def test_open_bot_lets_everyone_in() -> None:
    context = make_context(settings=Settings(authorized_user_id=None))

    asyncio.run(authorize(make_update(user_id=7), context))


def test_stranger_is_stopped() -> None:
    context = make_context(settings=Settings(authorized_user_id=42))

    with pytest.raises(ApplicationHandlerStop):
        asyncio.run(authorize(make_update(user_id=7), context))

    context.bot.send_message.assert_awaited_once_with(chat_id=1000, text="You are not allowed to use this bot.")


def test_stranger_gets_the_configured_animation() -> None:
    context = make_context(settings=Settings(authorized_user_id=42, unauthorized_animation="gif-file-id"))

    with pytest.raises(ApplicationHandlerStop):
        asyncio.run(authorize(make_update(user_id=7), context))

    context.bot.send_animation.assert_awaited_once_with(chat_id=1000, animation="gif-file-id")


def test_text_reply_keeps_pending_transaction_and_keyboard() -> None:
    router = MagicMock()
    router.route.return_value = BotReply(
        text="Which account did you use?",
        choices=[Choice(label="Wallet", callback_data="complete_expense_account:2")],
        pending=PENDING,
    )
    context = make_context(router)
    update = make_update(text="Spent 4.50 on coffee")

    asyncio.run(handle_text(update, context))

    router.route.assert_called_once_with("Spent 4.50 on coffee")
    assert context.user_data[PENDING_TX_KEY] == PENDING
    args, kwargs = update.message.reply_text.call_args
    assert args == ("Which account did you use?",)
    assert kwargs["reply_markup"].inline_keyboard[0][0].text == "Wallet"
    assert kwargs["parse_mode"] is None


def test_markdown_replies_set_parse_mode() -> None:
    router = MagicMock()
    router.route.return_value = BotReply(text="💰 *Account Balances*", markdown=True)
    update = make_update()

    asyncio.run(handle_text(update, make_context(router)))

    assert update.message.reply_text.call_args.kwargs["parse_mode"] == ParseMode.MARKDOWN


def test_unexpected_failure_sends_generic_error() -> None:
    router = MagicMock()
    router.route.side_effect = RuntimeError("boom")
    update = make_update()

    asyncio.run(handle_text(update, make_context(router)))

    assert update.message.reply_text.call_args.args == ("Sorry, I encountered an error processing your message.",)


def test_callback_consumes_pending_transaction() -> None:
    router = MagicMock()
    router.handle_callback.return_value = BotReply(text="💸 Transaction recorded!")
    context = make_context(router)
    context.user_data[PENDING_TX_KEY] = PENDING
    query = SimpleNamespace(data="complete_expense_account:2", answer=AsyncMock(), edit_message_text=AsyncMock())
    update = SimpleNamespace(callback_query=query)

    asyncio.run(handle_callback(update, context))

    router.handle_callback.assert_called_once_with("complete_expense_account:2", PENDING)
    assert PENDING_TX_KEY not in context.user_data
    query.edit_message_text.assert_awaited_once_with("💸 Transaction recorded!", reply_markup=None)


def test_callback_retry_keeps_pending_transaction_and_buttons() -> None:
    router = MagicMock()
    router.handle_callback.return_value = BotReply(
        text="Sorry, I couldn't find that account. Please try again.",
        choices=[Choice(label="Wallet", callback_data="complete_expense_account:2")],
        pending=PENDING,
    )
    context = make_context(router)
    context.user_data[PENDING_TX_KEY] = PENDING
    query = SimpleNamespace(data="complete_expense_account:9", answer=AsyncMock(), edit_message_text=AsyncMock())

    asyncio.run(handle_callback(SimpleNamespace(callback_query=query), context))

    assert context.user_data[PENDING_TX_KEY] == PENDING
    args, kwargs = query.edit_message_text.call_args
    assert args == ("Sorry, I couldn't find that account. Please try again.",)
    assert kwargs["reply_markup"].inline_keyboard[0][0].callback_data == "complete_expense_account:2"


def test_callback_failure_keeps_pending_transaction() -> None:
    router = MagicMock()
    router.handle_callback.side_effect = RuntimeError("boom")
    context = make_context(router)
    context.user_data[PENDING_TX_KEY] = PENDING
    query = SimpleNamespace(data="complete_expense_account:2", answer=AsyncMock(), edit_message_text=AsyncMock())

    asyncio.run(handle_callback(SimpleNamespace(callback_query=query), context))

    assert context.user_data[PENDING_TX_KEY] == PENDING
    query.edit_message_text.assert_awaited_once_with(
        "❌ Sorry, something went wrong with that action.", reply_markup=None
    )
