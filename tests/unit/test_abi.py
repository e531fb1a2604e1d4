"""
Unit tests for the contract ABI surface and data models.
"""

import pytest
from eth_utils import keccak

from fakes import USER, make_signed_intent, make_stored_intent
from intent_relayer.core import abi
from intent_relayer.core.models import ContractInfo, TxReceipt


def test_known_selectors():
    assert abi.FULFILL_INTENT.selector == keccak(text="fulfillIntent(uint256)")[:4]
    assert abi.EXECUTE_SWAP.signature == (
        "executeSwap((address,address,uint256,uint256,address,uint256,uint256),bytes)"
    )


def test_encode_call_without_args():
    assert abi.NEXT_INTENT_ID.encode_call() == "0x" + abi.NEXT_INTENT_ID.selector.hex()


def test_encode_call_with_address():
    data = abi.NONCES.encode_call(USER)
    assert len(data) == 2 + 8 + 64
    assert data.endswith(USER[2:].lower())


def test_event_topics_roundtrip():
    for name in abi.EVENT_SIGNATURES:
        assert abi.EVENT_NAMES_BY_TOPIC[abi.event_topic(name)] == name


def test_decode_intent_id_from_topic():
    topics = [abi.event_topic("IntentCreated"), "0x" + f"{42:064x}"]
    assert abi.decode_intent_id(topics, "0x") == 42


def test_decode_intent_id_from_data():
    topics = [abi.event_topic("IntentCancelled")]
    assert abi.decode_intent_id(topics, "0x" + f"{9:064x}" + "00" * 32) == 9


def test_decode_intent_id_missing():
    with pytest.raises(ValueError):
        abi.decode_intent_id([abi.event_topic("IntentFulfilled")], "0x")


def test_stored_intent_flags():
    assert make_stored_intent(1).exists
    assert not make_stored_intent(0).exists
    assert make_stored_intent(1, fulfilled=True).is_terminal
    assert not make_stored_intent(1).is_terminal


def test_signed_intent_tuple_order():
    intent = make_signed_intent(nonce=3)
    t = intent.as_tuple()
    assert t[0] == intent.from_token
    assert t[4] == intent.recipient
    assert t[6] == 3


def test_contract_info_fee_pct():
    info = ContractInfo(paused=False, fee_bps=30, fee_recipient=USER, next_intent_id=1, relayer_address=USER)
    assert info.fee_pct == pytest.approx(0.3)


def test_receipt_status():
    assert TxReceipt(tx_hash="0x1", block_number=1, status=1).succeeded
    assert not TxReceipt(tx_hash="0x1", block_number=1, status=0).succeeded
