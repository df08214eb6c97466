import base64
import json
import logging
import time
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from .backend import PaymentError

log = logging.getLogger(__name__)

DEFAULT_PAYMENT_NETWORK = "eip155:8453"


def canonical_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class PaymentSigner:
    """Turns a payment-required challenge into a signed authorization header value."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    @staticmethod
    def _requirements(challenge: Any) -> Dict[str, Any]:
        if not isinstance(challenge, dict):
            raise PaymentError("payment challenge is not a JSON object")
        # some facilitators nest the terms under "accepts"
        accepts = challenge.get("accepts")
        if isinstance(accepts, list) and accepts and isinstance(accepts[0], dict):
            return accepts[0]
        return challenge

    def authorize(self, challenge: Any, *, now: Optional[float] = None) -> str:
        terms = self._requirements(challenge)
        amount = terms.get("amount") or terms.get("maxAmountRequired")
        recipient = terms.get("recipient") or terms.get("payTo")
        if not amount or not recipient:
            raise PaymentError("payment challenge missing amount or recipient")
        authorization = {
            "amount": str(amount),
            "recipient": str(recipient),
            "reference": str(terms.get("reference") or ""),
            "network": str(terms.get("network") or DEFAULT_PAYMENT_NETWORK),
            "payer": self.address,
            "timestamp": int(now if now is not None else time.time()),
        }
        try:
            signed = self._account.sign_message(encode_defunct(text=canonical_json(authorization)))
        except Exception as exc:
            raise PaymentError(f"payment signing failed: {exc}") from exc
        signature = signed.signature.hex()
        authorization["signature"] = signature if signature.startswith("0x") else f"0x{signature}"
        log.info(
            "signed payment authorization for %s to %s on %s",
            authorization["amount"],
            authorization["recipient"],
            authorization["network"],
        )
        return base64.b64encode(canonical_json(authorization).encode("utf-8")).decode("ascii")


def decode_authorization(header_value: str) -> Dict[str, Any]:
    return json.loads(base64.b64decode(header_value).decode("utf-8"))
