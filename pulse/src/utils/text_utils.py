"""
Pulse - Text Utilities
=======================
Stateless helpers for rendering Slack timestamps and for the
post-processing applied to every model answer before it is sent
back to Slack.

Channel-reference rewriting
---------------------------
Models echo channel ids in unpredictable shapes (``<#C0123ABCD>``,
``**C0123ABCD**``, bare ids).  ``format_channel_references`` flattens
all of them and re-wraps anything that *looks* like a channel id into
Slack's ``<#ID>`` syntax.  It is a best-effort regex filter, not a
parser:

  • false positives: any upper-case word starting with ``C``/``G`` and
    9+ characters long (``CONFIGURATION``) is wrapped as a channel;
  • false negatives: ids shorter than 9 characters are left bare;
  • lossy round-trip: ``<#C0123ABCD|general>`` loses its brackets and
    the label stays glued to the id (``C0123ABCD|general`` is rewrapped
    as ``<#C0123ABCD>|general``).
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

# Bare channel/group id: starts with C or G, then ≥ 8 upper-case alnum chars
CHANNEL_ID_RE = re.compile(r"\b[CG][A-Z0-9]{8,}\b")

_BOLD_MARKER = "**"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def slack_ts_to_iso(ts: float | str) -> str:
    """
    Render a Slack ``ts`` (Unix seconds) as ISO-8601 UTC with millisecond
    precision and a ``Z`` suffix, e.g. ``2023-11-14T22:13:20.000Z``.
    """
    millis = int(float(ts) * 1000)
    moment = _EPOCH + timedelta(milliseconds=millis)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def strip_bold(text: str) -> str:
    """Remove Markdown ``**`` markers; Slack mrkdwn renders them literally."""
    return text.replace(_BOLD_MARKER, "")


def format_channel_references(text: str) -> str:
    """
    Normalise channel references in a model answer.

    Steps:
        1. Strip ``**`` bold markers.
        2. Remove every ``<#`` opener and every ``>``.
        3. Wrap each bare ``CHANNEL_ID_RE`` match as ``<#ID>``.
    """
    text = strip_bold(text)
    text = text.replace("<#", "").replace(">", "")
    return CHANNEL_ID_RE.sub(lambda match: f"<#{match.group(0)}>", text)
