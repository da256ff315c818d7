"""
Export Confirmation Detector

Decides whether a user's chat reply confirms an export the assistant offered.
Both checks have to pass: the reply reads as a yes, and an earlier assistant
message actually offered exportable content. A bare "yes" with nothing to
confirm never exports anything.
"""

import logging
import re
from typing import Collection, Iterable, Optional, Tuple

from qa_dashboard.core.models import ChatMessage, ExportDecision, ExportKind, MessageRole

logger = logging.getLogger(__name__)

# Filler words, punctuation and emoji allowed after an acknowledgement.
# Anything else ("ok but change step 2") is a new request, not a yes.
_ACK_TAIL = (
    r"(?:[\s,]+(?:please|thanks|thank\s+you|go\s+ahead|do\s+it|export\s+them|them|it))*"
    r"[\s,!.👍✅]*$"
)

# Short acknowledgements; the whole (stripped) reply has to match
AFFIRMATIVE_PATTERNS = [
    re.compile(r"^(yes|yeah|yea|yep|yup|y)" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^(sure|ok|okay|k)" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^go\s+(ahead|for\s+it)" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^confirm(ed)?" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^(please\s+)?(do\s+it|export|proceed|create\s+them)" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^please\s+do" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^(absolutely|definitely|of\s+course|sounds\s+good|let'?s\s+do\s+it)" + _ACK_TAIL, re.IGNORECASE),
    re.compile(r"^(👍|✅)" + _ACK_TAIL),
]

# Follow-up phrases the assistant uses to offer an export
EXPORT_PROMPT_PATTERNS = [
    re.compile(r"would\s+you\s+like\s+(me\s+)?to\s+export", re.IGNORECASE),
    re.compile(r"do\s+you\s+want\s+(me\s+)?to\s+export", re.IGNORECASE),
    re.compile(r"(shall|should)\s+i\s+export", re.IGNORECASE),
]

# Checked in order; test case markers win when a message has both
CONTENT_MARKERS: Tuple[Tuple[ExportKind, Tuple[str, ...]], ...] = (
    (ExportKind.TEST_CASE, ("**TEST CASES:**", "**Test Case")),
    (ExportKind.STORY, ("**USER STORIES:**", "**User Story")),
)


def is_affirmative(message: str) -> bool:
    text = (message or "").strip()
    return any(p.search(text) for p in AFFIRMATIVE_PATTERNS)


def offers_export(content: str) -> bool:
    return any(p.search(content or "") for p in EXPORT_PROMPT_PATTERNS)


def detect_export_kind(content: str) -> Optional[ExportKind]:
    """Return the kind of exportable content in an assistant message, if any"""
    for kind, markers in CONTENT_MARKERS:
        if any(marker in (content or "") for marker in markers):
            return kind
    return None


def detect_export_confirmation(
    message: str,
    conversation: Iterable[ChatMessage],
    resolved_ids: Collection[str] = ()
) -> ExportDecision:
    """
    Check whether a user reply confirms a pending export.

    Only the newest export offer is pending. Once it has been exported it is
    resolved, and older offers behind it are never picked up instead.

    Args:
        message: The user's latest message
        conversation: Prior messages of the current chat context, oldest first
        resolved_ids: Ids of offer messages that were already exported

    Returns:
        ExportDecision naming the kind and the assistant content to export,
        or a negative decision
    """
    if not is_affirmative(message):
        return ExportDecision.negative()

    for prior in reversed(list(conversation)):
        if prior.role != MessageRole.BOT or not offers_export(prior.content):
            continue
        kind = detect_export_kind(prior.content)
        if kind is None:
            continue
        if prior.id in resolved_ids:
            logger.debug("Latest export offer %s was already exported", prior.id)
            return ExportDecision.negative()
        logger.info("Export confirmed for %s content from message %s", kind.value, prior.id)
        return ExportDecision(
            should_export=True,
            export_type=kind,
            content=prior.content,
            message_id=prior.id,
        )

    logger.debug("Affirmative reply but no pending export offer in conversation")
    return ExportDecision.negative()
