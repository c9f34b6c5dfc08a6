"""
Reply resolution — fill denormalized reply previews from the log.

Runs after every log mutation. A reply whose target isn't in the log yet
keeps whatever it has (blank for rows off the wire) and is re-checked on
the next pass.
"""

from pairchat.log import MessageLog
from pairchat.models.message import Message, ReplyPreview

DEFAULT_SNIPPET_LENGTH = 100


def snippet(content: str, limit: int = DEFAULT_SNIPPET_LENGTH) -> str:
    if len(content) <= limit:
        return content
    return content[:limit].rstrip() + "…"


def preview_of(target: Message, limit: int = DEFAULT_SNIPPET_LENGTH) -> ReplyPreview:
    return ReplyPreview(id=target.id, sender=target.sender, snippet=snippet(target.content, limit))


def resolve_replies(log: MessageLog, snippet_length: int = DEFAULT_SNIPPET_LENGTH) -> int:
    """Re-derive reply previews for every message whose target is present.

    Returns the number of messages that changed.
    """
    changed = 0
    for message in log.snapshot():
        if message.reply_to is None:
            continue
        target = log.find_by_id(message.reply_to.id)
        if target is None:
            continue
        resolved = preview_of(target, snippet_length)
        if resolved != message.reply_to:
            log.upsert(message.model_copy(update={"reply_to": resolved}))
            changed += 1
    return changed
