from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from application.core import LedgerCore
from domain.errors import InvalidDeposit, Unavailable


logger = logging.getLogger(__name__)


class DepositWebhookEvent(BaseModel):
    """Deposit confirmation as sent by the chain watcher. `amount` is in lovelace."""

    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(alias="txHash", min_length=1)
    user_key: str = Field(alias="userKey", min_length=1)
    amount: int = Field(ge=0)
    confirmations: int = Field(ge=0)


class DepositWebhookResult(BaseModel):
    txHash: str
    status: str
    reason: Optional[str] = None
    balance: Optional[int] = None


def verify_signature(secret: str, raw_body: bytes, signature: Optional[str]) -> bool:
    """Check a hex-encoded HMAC-SHA256 of the raw request body."""

    if not signature:
        return False
    computed = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature.strip().lower())


def create_webhook_app(
    core: LedgerCore,
    secret: Optional[str] = None,
    signature_header: str = "X-Signature",
) -> FastAPI:
    """
    Build the HTTP app that receives deposit confirmations.

    Senders deliver at least once and retry on non-2xx answers, so storage
    failures are reported as 503 and everything else is answered 200 with
    a per-event status.
    """

    if not secret:
        logger.warning("No webhook secret configured; deposit signatures are not checked.")

    app = FastAPI(title="Dice ledger webhooks")

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.post("/webhooks/deposits")
    async def deposit_webhook(request: Request):
        raw = await request.body()

        if secret:
            if not verify_signature(secret, raw, request.headers.get(signature_header)):
                logger.warning("Rejected deposit webhook with a bad signature.")
                raise HTTPException(401, "Signature verification failed")

        try:
            payload = json.loads(raw)
        except ValueError:
            raise HTTPException(400, "Invalid JSON")

        items = payload if isinstance(payload, list) else [payload]
        try:
            events = [DepositWebhookEvent.model_validate(item) for item in items]
        except ValidationError as exc:
            raise HTTPException(400, f"Invalid deposit event: {exc.errors()}")

        results: List[DepositWebhookResult] = []
        for event in events:
            try:
                outcome = await asyncio.to_thread(
                    core.on_deposit_confirmed,
                    event.tx_hash,
                    event.user_key,
                    event.amount,
                    event.confirmations,
                )
            except InvalidDeposit as exc:
                raise HTTPException(400, str(exc))
            except Unavailable:
                logger.warning("Storage unavailable while crediting %s", event.tx_hash, exc_info=True)
                raise HTTPException(503, "Ledger temporarily unavailable")

            results.append(
                DepositWebhookResult(
                    txHash=outcome.tx_hash,
                    status=outcome.status.value,
                    reason=outcome.reason,
                    balance=outcome.balance,
                )
            )

        return {"ok": True, "results": [r.model_dump() for r in results]}

    return app
