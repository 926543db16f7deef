"""Prompt templates for auto-replies and daily report summaries."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from chat_panel.messenger.models import MediaPayload

if TYPE_CHECKING:
    from chat_panel.storage.models import ArchivedMessage

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a helpful, friendly chat assistant. Keep your responses concise and "
    "conversational (1-3 sentences when possible). Be natural and engaging. If asked "
    "about previous messages, refer to the conversation history provided."
)

DEFAULT_SUMMARY_PROMPT = (
    "You are reviewing one day of chat activity. Summarize it briefly: the main topics, "
    "who was most active, any questions left unanswered and any action items or "
    "important information people shared."
)

# Marker a custom summary template may contain to place the transcript.
TRANSCRIPT_PLACEHOLDER = "{messages}"

_MEDIA_NOTES = {
    "image": "[System Note: The user has sent an image. Take what it shows into account when you respond.]",
}


def describe_media(media: MediaPayload) -> str:
    """Metadata line for media the model cannot receive inline."""
    size_kb = len(media.data) / 1024
    return f"[Attached file: {media.filename} ({media.mime_type}, {size_kb:.1f} KB), content not available]"


def build_reply_prompt(
    text: str,
    history: str = "",
    system_instruction: Optional[str] = None,
    media: MediaPayload | None = None,
) -> str:
    """Assemble the auto-reply prompt.

    *history* is the pre-formatted block from ``ConversationStore.format_for_prompt``
    and is inserted verbatim.
    """
    system = system_instruction or DEFAULT_SYSTEM_INSTRUCTION

    if history:
        prompt = (
            f"{system}\n\n{history}Current message from user: {text}\n\n"
            "Provide a helpful and contextual response based on the conversation so far:"
        )
    else:
        prompt = f"{system}\n\nUser message: {text}\n\nProvide a helpful and friendly response:"

    if media is not None and media.family in _MEDIA_NOTES:
        prompt = f"{prompt}\n\n{_MEDIA_NOTES[media.family]}"
    return prompt


def transcript_lines(messages: list[ArchivedMessage]) -> list[str]:
    return [f"{m.sender_name or m.phone}: {m.body or '[Media]'}" for m in messages]


def build_summary_prompt(messages: list[ArchivedMessage], custom_prompt: Optional[str] = None) -> str:
    """Embed the flattened transcript into the custom or default template."""
    transcript = "\n".join(transcript_lines(messages))
    template = (custom_prompt or "").strip()

    if template and TRANSCRIPT_PLACEHOLDER in template:
        return template.replace(TRANSCRIPT_PLACEHOLDER, transcript)

    header = template or DEFAULT_SUMMARY_PROMPT
    return f"{header}\n\nMessages:\n{transcript}\n\nSummary:"
