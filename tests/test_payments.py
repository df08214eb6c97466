import pytest
from eth_account import Account
from eth_account.messages import encode_defunct

from conftest import WALLET_KEY
from core.backend import PaymentError
from core.payments import PaymentSigner, canonical_json, decode_authorization


def test_authorization_is_signed_by_agent_wallet():
    signer = PaymentSigner(WALLET_KEY)
    header = signer.authorize(
        {"amount": "1000000", "recipient": "0xabc", "reference": "job-1"}, now=1700000000
    )
    auth = decode_authorization(header)
    assert auth["payer"] == signer.address
    assert auth["network"] == "eip155:8453"
    assert auth["timestamp"] == 1700000000
    signature = auth.pop("signature")
    recovered = Account.recover_message(
        encode_defunct(text=canonical_json(auth)), signature=signature
    )
    assert recovered == signer.address


def test_nested_accepts_terms():
    signer = PaymentSigner(WALLET_KEY)
    header = signer.authorize(
        {"accepts": [{"maxAmountRequired": "5", "payTo": "0xdef", "network": "base"}]}
    )
    auth = decode_authorization(header)
    assert auth["amount"] == "5"
    assert auth["recipient"] == "0xdef"
    assert auth["network"] == "base"


@pytest.mark.parametrize("challenge", [None, "pay me", {"amount": "1"}, {"recipient": "0x1"}])
def test_bad_challenges(challenge):
    with pytest.raises(PaymentError):
        PaymentSigner(WALLET_KEY).authorize(challenge)
