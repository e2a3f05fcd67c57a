# eco_dispatch_api/ledger.py
"""
Append-only, hash-chained ledger of dispatch-lifecycle events.

Each block seals {payload, previousHash, timestampCreated} with SHA-256 over
canonical JSON (sorted keys, compact separators). The first block links to
GENESIS_SENTINEL. Appends are serialized by one lock so two writers can never
read the same tail and fork the chain.
"""
import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from eco_dispatch_api.errors import IntegrityError, ValidationError
from eco_dispatch_api.jsonstore import append_jsonl

logger = logging.getLogger(__name__)

GENESIS_SENTINEL = 'GENESIS'


def now_ms():
    return int(time.time() * 1000)


def block_digest(payload, previous_hash, timestamp_created):
    body = json.dumps(
        {'payload': payload, 'previousHash': previous_hash, 'timestampCreated': timestamp_created},
        sort_keys=True, separators=(',', ':'), ensure_ascii=False,
    )
    return hashlib.sha256(body.encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class LedgerBlock:
    index: int
    payload: Dict[str, Any]
    previous_hash: str
    timestamp_created: int
    hash: str

    def recompute_hash(self):
        return block_digest(self.payload, self.previous_hash, self.timestamp_created)

    def to_dict(self):
        return {
            'index': self.index,
            'payload': copy.deepcopy(self.payload),
            'previousHash': self.previous_hash,
            'hash': self.hash,
            'timestampCreated': self.timestamp_created,
        }


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    length: int
    first_invalid_index: Optional[int] = None
    reason: Optional[str] = None

    def raise_for_integrity(self):
        if not self.valid:
            raise IntegrityError(self.first_invalid_index, self.reason)

    def to_dict(self):
        return {
            'valid': self.valid,
            'length': self.length,
            'firstInvalidIndex': self.first_invalid_index,
            'reason': self.reason,
        }


def build_event(event_type, rake_id, actor=None, **fields):
    """Validate and assemble an event payload; rake_id is mandatory."""
    if not event_type or not str(event_type).strip():
        raise ValidationError("eventType required", field='eventType')
    if rake_id is None or not str(rake_id).strip():
        raise ValidationError("rakeId required", field='rakeId')
    payload = {k: v for k, v in fields.items() if v is not None}
    payload.update({
        'eventType': str(event_type).strip().upper(),
        'rakeId': str(rake_id).strip(),
        'actor': actor,
    })
    return payload


class JsonlLedgerSink:
    """Best-effort mirror of appended blocks to a JSON-lines file."""

    def __init__(self, path):
        self.path = path

    def __call__(self, block: LedgerBlock):
        append_jsonl(self.path, block.to_dict())


class HashChainLedger:
    def __init__(self, clock=now_ms, sink=None):
        self._blocks: List[LedgerBlock] = []
        self._lock = threading.Lock()
        self._clock = clock
        self._sink = sink

    def __len__(self):
        return len(self._blocks)

    def append(self, payload) -> LedgerBlock:
        """Seal `payload` onto the tail of the chain and return the new block."""
        if not isinstance(payload, dict) or not payload.get('rakeId'):
            raise ValidationError("rakeId required", field='rakeId')
        # detached copy so callers cannot edit a sealed block afterwards
        payload = json.loads(json.dumps(payload, default=str))
        with self._lock:
            previous_hash = self._blocks[-1].hash if self._blocks else GENESIS_SENTINEL
            timestamp = self._clock()
            block = LedgerBlock(
                index=len(self._blocks),
                payload=payload,
                previous_hash=previous_hash,
                timestamp_created=timestamp,
                hash=block_digest(payload, previous_hash, timestamp),
            )
            self._blocks.append(block)
            # mirror while still holding the lock so the file keeps chain order
            if self._sink is not None:
                try:
                    self._sink(block)
                except OSError as exc:
                    logger.warning("ledger mirror write failed for block %d: %s", block.index, exc)
        logger.info("ledger block %d appended: %s %s", block.index,
                    payload.get('eventType'), payload.get('rakeId'))
        return block

    def append_event(self, event_type, rake_id, actor=None, **fields) -> LedgerBlock:
        return self.append(build_event(event_type, rake_id, actor=actor, **fields))

    def snapshot(self) -> List[LedgerBlock]:
        # waits out an in-flight append, then copies the tail reference list
        with self._lock:
            return list(self._blocks)

    def list(self):
        chain = [b.to_dict() for b in self.snapshot()]
        return {'length': len(chain), 'chain': chain}

    def verify(self) -> VerificationResult:
        """
        Walk the chain from index 0, recomputing every digest and checking
        every link. Reports the first block where either check fails; blocks
        from that index on can no longer be trusted.
        """
        blocks = self.snapshot()
        expected_previous = GENESIS_SENTINEL
        for position, block in enumerate(blocks):
            if block.index != position:
                return VerificationResult(False, len(blocks), position,
                                          f"index {block.index} at position {position}")
            if block.previous_hash != expected_previous:
                return VerificationResult(False, len(blocks), position,
                                          "previousHash does not match preceding block")
            recomputed = block.recompute_hash()
            if recomputed != block.hash:
                return VerificationResult(False, len(blocks), position,
                                          "stored hash does not match block content")
            expected_previous = recomputed
        return VerificationResult(True, len(blocks))
