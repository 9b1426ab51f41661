"""Versioned payload envelope for everything written to storage."""

import json
from typing import Any

from memflow.core.exceptions import MalformedSnapshotError

PAYLOAD_VERSION = 1


def encode_payload(kind: str, data: Any, saved_at: int) -> str:
    """Wrap ``data`` in a versioned envelope and serialize it."""
    return json.dumps(
        {
            "version": PAYLOAD_VERSION,
            "kind": kind,
            "saved_at": saved_at,
            "data": data,
        },
        ensure_ascii=False,
    )


def decode_payload(raw: str, kind: str) -> Any:
    """Parse an envelope and return its ``data``.

    Raises:
        MalformedSnapshotError: invalid JSON, wrong shape, unknown version,
            or a payload of a different kind.
    """
    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedSnapshotError(f"Invalid JSON for {kind}: {e}") from e

    if not isinstance(envelope, dict) or "data" not in envelope:
        raise MalformedSnapshotError(f"Missing envelope for {kind}")

    version = envelope.get("version")
    if version != PAYLOAD_VERSION:
        raise MalformedSnapshotError(f"Unsupported payload version {version!r} for {kind}")

    if envelope.get("kind") != kind:
        raise MalformedSnapshotError(
            f"Expected payload kind {kind!r}, got {envelope.get('kind')!r}"
        )

    return envelope["data"]
