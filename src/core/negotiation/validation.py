import re
from typing import Optional

from src.core.negotiation.errors import ProposalValidationError
from src.core.negotiation.models import MessageAttachment

SUBJECT_MIN_LENGTH = 5
SUBJECT_MAX_LENGTH = 200
MESSAGE_MIN_LENGTH = 10
MESSAGE_MAX_LENGTH = 5000
BUDGET_RANGE_MAX_LENGTH = 100
TIMELINE_MAX_LENGTH = 500
RESPONSE_MESSAGE_MAX_LENGTH = 2000
THREAD_MESSAGE_MAX_LENGTH = 2000
ATTACHMENT_URL_MAX_LENGTH = 2048
ATTACHMENT_NAME_MAX_LENGTH = 255

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_STYLE_BLOCK = re.compile(r"<style\b[^<]*(?:(?!</style>)<[^<]*)*</style>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_ANGLE_BRACKETS = re.compile(r"[<>]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_text(value: str) -> str:
    """Strip markup and collapse whitespace.

    Script and style blocks are removed together with their bodies, every
    other tag is dropped, and any stray angle bracket left behind is removed,
    so the result never contains ``<`` or ``>`` and sanitizing twice is a
    no-op.
    """
    cleaned = _SCRIPT_BLOCK.sub("", value)
    cleaned = _STYLE_BLOCK.sub("", cleaned)
    cleaned = _TAG.sub("", cleaned)
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def sanitize_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = sanitize_text(value)
    return cleaned or None


def validate_subject(subject: Optional[str]) -> None:
    length = len((subject or "").strip())
    if length < SUBJECT_MIN_LENGTH:
        raise ProposalValidationError(
            "subject",
            f"subject must be at least {SUBJECT_MIN_LENGTH} characters",
            code="SUBJECT_TOO_SHORT",
        )
    if length > SUBJECT_MAX_LENGTH:
        raise ProposalValidationError(
            "subject",
            f"subject must be at most {SUBJECT_MAX_LENGTH} characters",
            code="SUBJECT_TOO_LONG",
        )


def validate_message(message: Optional[str]) -> None:
    length = len((message or "").strip())
    if length < MESSAGE_MIN_LENGTH:
        raise ProposalValidationError(
            "message",
            f"message must be at least {MESSAGE_MIN_LENGTH} characters",
            code="MESSAGE_TOO_SHORT",
        )
    if length > MESSAGE_MAX_LENGTH:
        raise ProposalValidationError(
            "message",
            f"message must be at most {MESSAGE_MAX_LENGTH} characters",
            code="MESSAGE_TOO_LONG",
        )


def _validate_max_length(field: str, value: Optional[str], max_length: int) -> None:
    if value is not None and len(value.strip()) > max_length:
        raise ProposalValidationError(
            field,
            f"{field} must be at most {max_length} characters",
            code=f"{field.upper()}_TOO_LONG",
        )


def validate_proposal_fields(
    *,
    subject: Optional[str],
    message: Optional[str],
    budget_range: Optional[str],
    timeline: Optional[str],
) -> None:
    validate_subject(subject)
    validate_message(message)
    _validate_max_length("budget_range", budget_range, BUDGET_RANGE_MAX_LENGTH)
    _validate_max_length("timeline", timeline, TIMELINE_MAX_LENGTH)


def validate_response_message(response_message: Optional[str]) -> None:
    _validate_max_length("response_message", response_message, RESPONSE_MESSAGE_MAX_LENGTH)


def validate_thread_message(content: Optional[str]) -> None:
    length = len((content or "").strip())
    if length == 0:
        raise ProposalValidationError(
            "content", "content must not be empty", code="CONTENT_REQUIRED"
        )
    if length > THREAD_MESSAGE_MAX_LENGTH:
        raise ProposalValidationError(
            "content",
            f"content must be at most {THREAD_MESSAGE_MAX_LENGTH} characters",
            code="CONTENT_TOO_LONG",
        )


def clean_attachment(attachment: Optional[MessageAttachment]) -> Optional[MessageAttachment]:
    if attachment is None:
        return None
    url = attachment.url.strip()
    if not url.lower().startswith(("http://", "https://")) or any(ch.isspace() for ch in url):
        raise ProposalValidationError(
            "attachment.url",
            "attachment url must be an absolute http(s) URL",
            code="ATTACHMENT_URL_INVALID",
        )
    if len(url) > ATTACHMENT_URL_MAX_LENGTH:
        raise ProposalValidationError(
            "attachment.url",
            f"attachment url must be at most {ATTACHMENT_URL_MAX_LENGTH} characters",
            code="ATTACHMENT_URL_TOO_LONG",
        )
    name = sanitize_text(attachment.name)
    if not name:
        raise ProposalValidationError(
            "attachment.name", "attachment name must not be empty", code="ATTACHMENT_NAME_REQUIRED"
        )
    if len(name) > ATTACHMENT_NAME_MAX_LENGTH:
        raise ProposalValidationError(
            "attachment.name",
            f"attachment name must be at most {ATTACHMENT_NAME_MAX_LENGTH} characters",
            code="ATTACHMENT_NAME_TOO_LONG",
        )
    return MessageAttachment(url=url, name=name)
