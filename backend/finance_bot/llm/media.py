"""Photo, voice, audio and document analysis through the vision and audio models."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from ..errors import UnsupportedMediaError
from .gateway import ModelGateway
from .prompts import PromptManager, compile_prompt

logger = logging.getLogger(__name__)

TEXT_EXTRACTION_PROMPT = 'Extract all text from this image. If there is no text, say "No text found."'
DOCUMENT_PREVIEW_CHARS = 500


@dataclass(slots=True)
class VoiceAnalysis:
    transcription: str
    analysis: str | None = None


@dataclass(slots=True)
class DocumentAnalysis:
    extracted_text: str | None = None
    analysis: str | None = None


def to_data_url(data: bytes, mime_type: str = "image/jpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def format_voice_reply(result: VoiceAnalysis) -> str:
    return (
        f"🎤 Transcription:\n{result.transcription}\n\n"
        f"📝 Response:\n{result.analysis or 'No analysis available.'}"
    )


def format_document_reply(result: DocumentAnalysis) -> str:
    lines = ["📄 Document Analysis:", ""]
    if result.extracted_text:
        lines += [f"Text extracted ({len(result.extracted_text)} characters)", ""]
    if result.analysis:
        lines.append(f"Summary:\n{result.analysis}")
    else:
        text = result.extracted_text or ""
        suffix = "..." if len(text) > DOCUMENT_PREVIEW_CHARS else ""
        lines.append(f"Extracted text:\n{text[:DOCUMENT_PREVIEW_CHARS]}{suffix}")
    return "\n".join(lines)


class MediaAnalyzer:
    def __init__(self, gateway: ModelGateway, prompts: PromptManager) -> None:
        self._gateway = gateway
        self._prompts = prompts

    def _ask_about_image(self, image_url: str, prompt: str, *, temperature: float = 0.7, max_tokens: int = 1000) -> str:
        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ]
        response = self._gateway.chat(
            messages, self._gateway.get_model("vision"), temperature=temperature, max_tokens=max_tokens
        )
        return response.content

    def describe_photo(self, data: bytes, caption: str | None = None, mime_type: str = "image/jpeg") -> str:
        if caption:
            prompt = compile_prompt(self._prompts.get_prompt("image-with-caption"), {"caption": caption})
        else:
            prompt = self._prompts.get_prompt("image-description")
        return self._ask_about_image(to_data_url(data, mime_type), prompt)

    def transcribe(self, data: bytes, filename: str = "audio.mp3") -> str:
        transcription = self._gateway.transcribe_audio(data, filename)
        logger.info("Transcribed %s (%d characters)", filename, len(transcription))
        return transcription

    def analyze_voice(self, data: bytes, filename: str = "voice.ogg") -> VoiceAnalysis:
        analysis_prompt = self._prompts.get_prompt("voice-analysis")
        transcription = self.transcribe(data, filename)
        response = self._gateway.complete(
            transcription, analysis_prompt, self._gateway.get_model("text-fast")
        )
        return VoiceAnalysis(transcription=transcription, analysis=response.content)

    def analyze_document(self, data: bytes, mime_type: str | None) -> DocumentAnalysis:
        mime_type = mime_type or "application/octet-stream"
        if mime_type == "application/pdf":
            raise UnsupportedMediaError(mime_type, "PDF documents are not supported yet. Please send a screenshot instead.")
        if not (mime_type.startswith("image/") or mime_type.startswith("text/")):
            raise UnsupportedMediaError(mime_type)

        analysis_prompt = self._prompts.get_prompt("document-analysis")
        if mime_type.startswith("image/"):
            image_url = to_data_url(data, mime_type)
            extracted = self._ask_about_image(image_url, TEXT_EXTRACTION_PROMPT, temperature=0.1, max_tokens=2000)
            analysis = self._ask_about_image(image_url, f"{analysis_prompt}\n\nExtracted text: {extracted}")
            return DocumentAnalysis(extracted_text=extracted, analysis=analysis)

        text = data.decode("utf-8", errors="replace")
        response = self._gateway.complete(text, analysis_prompt)
        return DocumentAnalysis(extracted_text=text, analysis=response.content)
