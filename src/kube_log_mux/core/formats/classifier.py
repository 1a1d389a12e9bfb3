"""Turn raw stern output lines into typed records."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import RunConfiguration
from ..models import (
    ClassifiedRecord,
    Drop,
    DropReason,
    InvalidLine,
    PlainText,
    RawLine,
    RecordOrigin,
)
from .base import loads_structured, split_leading_timestamp
from .envelope import parse_envelope
from .shapes import classify_value


@dataclass(frozen=True, slots=True)
class MessageClassifier:
    """Classify one line, then apply the skip-invalid and container filters."""

    config: RunConfiguration

    def classify(self, raw: RawLine) -> ClassifiedRecord | InvalidLine | Drop:
        record = self.detect(raw)

        if isinstance(record, InvalidLine):
            if self.config.skip_invalid:
                return Drop(DropReason.INVALID)
            return record

        if not self.config.container_allowed(record.origin.container):
            return Drop(DropReason.CONTAINER)
        return record

    def detect(self, raw: RawLine) -> ClassifiedRecord | InvalidLine:
        """Type detection only, without filtering."""
        text = raw.text.strip()
        ok, value = loads_structured(text)
        if ok:
            envelope = parse_envelope(value)
            if envelope is not None:
                origin = RecordOrigin(
                    context=raw.context,
                    pod=envelope.pod_name,
                    container=envelope.container_name,
                )
                return _classify_text(origin, envelope.message, structured=True)
            return classify_value(RecordOrigin(context=raw.context), value)

        return _classify_text(RecordOrigin(context=raw.context), text, structured=False)


def _classify_text(
    origin: RecordOrigin, text: str, *, structured: bool
) -> ClassifiedRecord | InvalidLine:
    ok, value = loads_structured(text)
    if ok:
        return classify_value(origin, value)

    split = split_leading_timestamp(text)
    if split is not None:
        ts, rest = split
        ok, value = loads_structured(rest)
        if ok:
            return classify_value(origin, value, ts)
        return PlainText(origin=origin, text=rest, timestamp=ts)

    if structured:
        return PlainText(origin=origin, text=text)
    return InvalidLine(origin=origin, text=text)
