import dataclasses
import json
import threading
import time

import pytest

from eco_dispatch_api.errors import IntegrityError, ValidationError
from eco_dispatch_api.ledger import (
    GENESIS_SENTINEL,
    HashChainLedger,
    JsonlLedgerSink,
    block_digest,
    build_event,
)


def dispatch(ledger, rake_id='RK001', **fields):
    return ledger.append_event('DISPATCH', rake_id, actor='yard@sail.test', **fields)


class TestAppend:
    def test_genesis_and_link(self, ledger):
        first = dispatch(ledger, tonnage=3000)
        second = dispatch(ledger, 'RK002')
        assert first.index == 0
        assert first.previous_hash == GENESIS_SENTINEL
        assert second.index == 1
        assert second.previous_hash == first.hash

    def test_hash_covers_payload_link_and_timestamp(self, ledger):
        block = dispatch(ledger)
        assert block.hash == block_digest(block.payload, GENESIS_SENTINEL, block.timestamp_created)

    def test_payload_fields(self, ledger):
        block = dispatch(ledger, **{'from': 'BKSC', 'to': 'DGR', 'cargo': 'ore', 'tonnage': None})
        assert block.payload == {
            'eventType': 'DISPATCH', 'rakeId': 'RK001', 'actor': 'yard@sail.test',
            'from': 'BKSC', 'to': 'DGR', 'cargo': 'ore',
        }

    @pytest.mark.parametrize('rake_id', [None, '', '   '])
    def test_rake_id_required(self, ledger, rake_id):
        with pytest.raises(ValidationError) as exc_info:
            ledger.append_event('DISPATCH', rake_id)
        assert exc_info.value.field == 'rakeId'
        assert len(ledger) == 0

    def test_raw_append_requires_rake_id(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append({'eventType': 'DISPATCH'})

    def test_event_type_required(self):
        with pytest.raises(ValidationError):
            build_event('', 'RK001')

    def test_caller_cannot_edit_sealed_payload(self, ledger):
        payload = build_event('DISPATCH', 'RK001', cargo='ore')
        ledger.append(payload)
        payload['cargo'] = 'gold'
        ledger.list()['chain'][0]['payload']['cargo'] = 'silver'
        assert ledger.snapshot()[0].payload['cargo'] == 'ore'
        assert ledger.verify().valid

    def test_list_shape(self, ledger):
        dispatch(ledger)
        listing = ledger.list()
        assert listing['length'] == 1
        assert set(listing['chain'][0]) == {'index', 'payload', 'previousHash', 'hash', 'timestampCreated'}

    def test_concurrent_appends_never_fork(self):
        ledger = HashChainLedger()
        barrier = threading.Barrier(16)

        def worker(n):
            barrier.wait()
            for i in range(10):
                ledger.append_event('DISPATCH', f'RK{n:02d}{i}')

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        blocks = ledger.snapshot()
        assert [b.index for b in blocks] == list(range(160))
        assert len({b.previous_hash for b in blocks}) == 160
        assert ledger.verify().valid


class TestVerify:
    def test_empty_chain_is_valid(self, ledger):
        assert ledger.verify().to_dict() == {
            'valid': True, 'length': 0, 'firstInvalidIndex': None, 'reason': None}

    def test_untouched_chain_is_valid(self, ledger):
        for n in range(5):
            dispatch(ledger, f'RK00{n}')
        result = ledger.verify()
        assert result.valid
        assert result.length == 5

    def test_tampered_payload_detected(self, ledger):
        dispatch(ledger, tonnage=3000)
        dispatch(ledger, 'RK002')
        ledger._blocks[0].payload['tonnage'] = 9999
        result = ledger.verify()
        assert result.valid is False
        assert result.first_invalid_index == 0

    def test_tampering_in_the_middle(self, ledger):
        for n in range(4):
            dispatch(ledger, f'RK00{n}')
        ledger._blocks[2].payload['actor'] = 'mallory'
        assert ledger.verify().first_invalid_index == 2

    def test_rehashed_block_breaks_the_next_link(self, ledger):
        for n in range(3):
            dispatch(ledger, f'RK00{n}')
        forged = ledger._blocks[1]
        payload = dict(forged.payload, rakeId='RK999')
        ledger._blocks[1] = dataclasses.replace(
            forged, payload=payload,
            hash=block_digest(payload, forged.previous_hash, forged.timestamp_created))
        result = ledger.verify()
        assert result.first_invalid_index == 2
        assert 'previousHash' in result.reason

    def test_removed_block_detected(self, ledger):
        for n in range(3):
            dispatch(ledger, f'RK00{n}')
        del ledger._blocks[1]
        assert ledger.verify().first_invalid_index == 1

    def test_raise_for_integrity(self, ledger):
        dispatch(ledger)
        ledger._blocks[0].payload['rakeId'] = 'RK666'
        with pytest.raises(IntegrityError) as exc_info:
            ledger.verify().raise_for_integrity()
        assert exc_info.value.index == 0


class TestSink:
    def test_blocks_mirrored_to_jsonl(self, tmp_path):
        path = tmp_path / 'mirror' / 'ledger.jsonl'
        ledger = HashChainLedger(sink=JsonlLedgerSink(str(path)))
        first = dispatch(ledger)
        second = dispatch(ledger, 'RK002')
        lines = [json.loads(line) for line in path.read_text(encoding='utf-8').splitlines()]
        assert [l['hash'] for l in lines] == [first.hash, second.hash]

    def test_mirror_keeps_chain_order_under_concurrency(self):
        mirrored = []

        def slow_sink(block):
            time.sleep(0.001)
            mirrored.append(block.index)

        ledger = HashChainLedger(sink=slow_sink)
        threads = [threading.Thread(target=lambda: [dispatch(ledger) for _ in range(5)])
                   for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert mirrored == list(range(40))

    def test_sink_failure_does_not_fail_append(self, tmp_path):
        def broken_sink(block):
            raise OSError('disk full')

        ledger = HashChainLedger(sink=broken_sink)
        assert dispatch(ledger).index == 0
        assert len(ledger) == 1
