import base64
from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import sent_messages
from finance_bot.errors import UnsupportedMediaError
from finance_bot.llm.gateway import ModelGateway
from finance_bot.llm.media import (
    DocumentAnalysis,
    MediaAnalyzer,
    VoiceAnalysis,
    format_document_reply,
    format_voice_reply,
    to_data_url,
)
from finance_bot.llm.prompts import PromptManager


@pytest.fixture
def media(gateway: ModelGateway, prompts: PromptManager) -> MediaAnalyzer:
    return MediaAnalyzer(gateway, prompts)


def test_to_data_url() -> None:
    assert to_data_url(b"abc", "image/png") == "data:image/png;base64," + base64.b64encode(b"abc").decode()


def test_photo_with_caption_uses_the_caption_prompt(
    media: MediaAnalyzer, model_replies: Callable[..., None], openai_client: MagicMock
) -> None:
    model_replies("A grocery receipt for 23.10 EUR")

    assert media.describe_photo(b"jpeg-bytes", "lunch receipt") == "A grocery receipt for 23.10 EUR"

    [message] = sent_messages(openai_client)
    text_part, image_part = message["content"]
    assert text_part == {"type": "text", "text": "Describe this receipt. The user said: lunch receipt"}
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert openai_client.chat.completions.create.call_args.kwargs["model"] == "anthropic/claude-sonnet-4.5"


def test_photo_without_caption(media: MediaAnalyzer, model_replies: Callable[..., None], openai_client: MagicMock) -> None:
    model_replies("A cat")

    media.describe_photo(b"jpeg-bytes")

    [message] = sent_messages(openai_client)
    assert message["content"][0]["text"] == "Describe this image."


def test_voice_is_transcribed_then_answered(
    media: MediaAnalyzer, model_replies: Callable[..., None], openai_client: MagicMock
) -> None:
    openai_client.audio.transcriptions.create.return_value = SimpleNamespace(text="how much did I spend")
    model_replies("Let me check that for you.")

    result = media.analyze_voice(b"ogg-bytes")

    assert result == VoiceAnalysis(transcription="how much did I spend", analysis="Let me check that for you.")
    assert sent_messages(openai_client) == [
        {"role": "system", "content": "Answer the user's spoken request."},
        {"role": "user", "content": "how much did I spend"},
    ]
    assert openai_client.chat.completions.create.call_args.kwargs["model"] == "openai/gpt-4o-mini"


@pytest.mark.parametrize(
    ("mime_type", "message"),
    [
        ("application/pdf", "PDF documents are not supported yet. Please send a screenshot instead."),
        ("application/zip", "Unsupported file type: application/zip"),
        (None, "Unsupported file type: application/octet-stream"),
    ],
)
def test_unsupported_documents(media: MediaAnalyzer, openai_client: MagicMock, mime_type: str | None, message: str) -> None:
    with pytest.raises(UnsupportedMediaError) as excinfo:
        media.analyze_document(b"data", mime_type)

    assert str(excinfo.value) == message
    openai_client.chat.completions.create.assert_not_called()


def test_image_document_extracts_then_analyses(
    media: MediaAnalyzer, model_replies: Callable[..., None], openai_client: MagicMock
) -> None:
    model_replies("TOTAL 42.00", "A receipt totalling 42.")

    result = media.analyze_document(b"png-bytes", "image/png")

    assert result == DocumentAnalysis(extracted_text="TOTAL 42.00", analysis="A receipt totalling 42.")
    second = sent_messages(openai_client, 1)[0]["content"][0]["text"]
    assert second == "Summarise this document.\n\nExtracted text: TOTAL 42.00"


def test_text_document_is_sent_to_the_text_model(
    media: MediaAnalyzer, model_replies: Callable[..., None], openai_client: MagicMock
) -> None:
    model_replies("Rent is due on the 5th.")

    result = media.analyze_document("Rent: 800 EUR due 5th".encode(), "text/plain")

    assert result.extracted_text == "Rent: 800 EUR due 5th"
    assert result.analysis == "Rent is due on the 5th."
    assert openai_client.chat.completions.create.call_args.kwargs["model"] == "anthropic/claude-haiku-4.5"


def test_reply_formatting() -> None:
    assert format_voice_reply(VoiceAnalysis(transcription="hi")) == (
        "🎤 Transcription:\nhi\n\n📝 Response:\nNo analysis available."
    )
    assert format_document_reply(DocumentAnalysis(extracted_text="abc", analysis="Short.")) == (
        "📄 Document Analysis:\n\nText extracted (3 characters)\n\nSummary:\nShort."
    )
    long_text = "x" * 600
    assert format_document_reply(DocumentAnalysis(extracted_text=long_text)).endswith("x" * 500 + "...")
