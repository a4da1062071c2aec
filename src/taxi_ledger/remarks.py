"""Structured remark sub-tags.

Older records encode stopovers and app vendors inside the free-text remarks,
e.g. ``"(経由)巽中2→今里 GO決済 予約"``. :func:`parse_remarks` lifts those
markers into a :class:`RemarkTags` and leaves the remaining text as notes;
:func:`render_remarks` writes the legacy form back for exports.
"""

from __future__ import annotations

import re
from dataclasses import replace

from taxi_ledger.model import RemarkTags

STOPOVER_MARKER = "(経由)"
STOPOVER_SEPARATOR = "→"

_STOPOVER_RE = re.compile(r"\(経由\)(\S+)\s*")
_PAYMENT_VENDOR_RE = re.compile(r"(GO|Didi|DiDi|Uber|QR)決済\s*")
_DISPATCH_VENDOR_RE = re.compile(r"(GO|Didi|DiDi|Uber|S\.RIDE|s\.ride)配車\s*")

_VENDOR_ALIASES = {"DiDi": "Didi", "s.ride": "S.RIDE"}


def _normalise_vendor(name: str) -> str:
    return _VENDOR_ALIASES.get(name, name)


def _tidy(text: str) -> str:
    lines = (" ".join(line.split()) for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def parse_remarks(text: str) -> tuple[str, RemarkTags]:
    """Split legacy remarks into free-text notes and structured tags."""
    if not text:
        return "", RemarkTags()

    stopovers: tuple[str, ...] = ()
    match = _STOPOVER_RE.search(text)
    if match:
        stopovers = tuple(
            stop.strip() for stop in match.group(1).split(STOPOVER_SEPARATOR) if stop.strip()
        )
        text = text[: match.start()] + text[match.end():]

    payment_vendor = None
    match = _PAYMENT_VENDOR_RE.search(text)
    if match:
        payment_vendor = _normalise_vendor(match.group(1))
        text = text[: match.start()] + text[match.end():]

    dispatch_vendor = None
    match = _DISPATCH_VENDOR_RE.search(text)
    if match:
        dispatch_vendor = _normalise_vendor(match.group(1))
        text = text[: match.start()] + text[match.end():]

    tags = RemarkTags(
        stopovers=stopovers,
        payment_vendor=payment_vendor,
        dispatch_vendor=dispatch_vendor,
    )
    return _tidy(text), tags


def render_remarks(notes: str, tags: RemarkTags) -> str:
    """Inverse of :func:`parse_remarks`, one marker per line."""
    parts: list[str] = []
    if tags.stopovers:
        parts.append(STOPOVER_MARKER + STOPOVER_SEPARATOR.join(tags.stopovers))
    if tags.dispatch_vendor:
        parts.append(f"{tags.dispatch_vendor}配車")
    if tags.payment_vendor:
        parts.append(f"{tags.payment_vendor}決済")
    if notes:
        parts.append(notes)
    return "\n".join(parts)


def add_stopover(tags: RemarkTags, place: str) -> RemarkTags:
    """Append a stop unless it repeats the last one."""
    place = place.strip()
    if not place or (tags.stopovers and tags.stopovers[-1] == place):
        return tags
    return replace(tags, stopovers=tags.stopovers + (place,))


__all__ = ["add_stopover", "parse_remarks", "render_remarks"]
