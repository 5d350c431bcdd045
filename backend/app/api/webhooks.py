"""Webhook endpoints that feed the pre-pump transaction ledger.

The Helius endpoint receives enhanced transaction notifications and turns
every SWAP into a buy or sell event for the traded token.  It is
unauthenticated because Helius calls it directly, so we validate the payload
structure instead and drop anything that does not parse.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from app.dependencies import get_store
from app.schemas.prepump import BondingCurveUpdate, TxEvent
from app.services.store import Store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

LAMPORTS_PER_SOL = 1_000_000_000
WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"

# Quote-side mints; the traded token is whatever else moved
_IGNORED_MINTS = {
    WRAPPED_SOL_MINT,
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # USDC
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",  # USDT
}


def _sol_moved(tx: dict, wallet: str, direction: str) -> float:
    """SOL the wallet spent on a buy or received from a sell.

    Native lamport transfers are preferred; wrapped SOL token transfers are
    the fallback for routes that never unwrap.
    """
    lamports = 0
    for transfer in tx.get("nativeTransfers") or []:
        if not isinstance(transfer, dict):
            continue
        if direction == "buy" and transfer.get("fromUserAccount") == wallet:
            lamports += transfer.get("amount") or 0
        elif direction == "sell" and transfer.get("toUserAccount") == wallet:
            lamports += transfer.get("amount") or 0
    if lamports:
        return lamports / LAMPORTS_PER_SOL

    sol = 0.0
    for transfer in tx.get("tokenTransfers") or []:
        if not isinstance(transfer, dict) or transfer.get("mint") != WRAPPED_SOL_MINT:
            continue
        if direction == "buy" and transfer.get("fromUserAccount") == wallet:
            sol += float(transfer.get("tokenAmount") or 0)
        elif direction == "sell" and transfer.get("toUserAccount") == wallet:
            sol += float(transfer.get("tokenAmount") or 0)
    return sol


def _first_mint(legs) -> str:
    for leg in legs or []:
        if isinstance(leg, dict):
            mint = leg.get("mint") or ""
            if mint and mint not in _IGNORED_MINTS:
                return mint
    return ""


def _native_lamports(leg) -> float:
    if not isinstance(leg, dict):
        return 0.0
    return float(leg.get("amount") or 0)


def _from_swap_summary(tx: dict, fee_payer: str) -> Optional[TxEvent]:
    """Read the trade from ``events.swap`` when Helius provides one.

    SOL in with no SOL out is a buy of the output token; SOL out with no SOL
    in is a sell of the input token.  Token-for-token routes return None.
    """
    events = tx.get("events")
    swap = events.get("swap") if isinstance(events, dict) else None
    if not isinstance(swap, dict):
        return None

    native_in, native_out = swap.get("nativeInput"), swap.get("nativeOutput")
    lamports_in, lamports_out = _native_lamports(native_in), _native_lamports(native_out)
    if lamports_in > 0 and lamports_out <= 0:
        direction, lamports, leg = "buy", lamports_in, native_in
        mint = _first_mint(swap.get("tokenOutputs"))
    elif lamports_out > 0 and lamports_in <= 0:
        direction, lamports, leg = "sell", lamports_out, native_out
        mint = _first_mint(swap.get("tokenInputs"))
    else:
        return None
    if not mint:
        return None

    return TxEvent(
        token_address=mint,
        wallet=leg.get("account") or fee_payer,
        direction=direction,
        amount_sol=lamports / LAMPORTS_PER_SOL,
        signature=tx.get("signature") or "",
        timestamp=tx.get("timestamp"),
    )


def _parse_swap_event(tx: dict) -> Optional[TxEvent]:
    """Extract a trade from a single Helius enhanced transaction.

    Returns None if the transaction is not a usable swap.
    """
    fee_payer = tx.get("feePayer")
    if not fee_payer:
        return None

    event = _from_swap_summary(tx, fee_payer)
    if event is not None:
        return event

    token_transfers = tx.get("tokenTransfers")
    if not token_transfers or not isinstance(token_transfers, list):
        return None

    # A token (not SOL/stables) sent TO the fee payer is a buy, FROM it a sell
    for transfer in token_transfers:
        if not isinstance(transfer, dict):
            continue
        mint = transfer.get("mint", "")
        if not mint or mint in _IGNORED_MINTS:
            continue

        if transfer.get("toUserAccount") == fee_payer:
            direction = "buy"
        elif transfer.get("fromUserAccount") == fee_payer:
            direction = "sell"
        else:
            continue

        return TxEvent(
            token_address=mint,
            wallet=fee_payer,
            direction=direction,
            amount_sol=_sol_moved(tx, fee_payer, direction),
            signature=tx.get("signature") or "",
            timestamp=tx.get("timestamp"),
        )

    return None


async def _json_body(request: Request):
    try:
        return await request.json()
    except Exception:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")


@router.post("/helius")
async def helius_webhook(request: Request, store: Store = Depends(get_store)):
    """Receive enhanced transaction notifications from Helius.

    Helius sends an array of enhanced transaction objects.  Each SWAP is
    recorded as a trade of the non-SOL mint by the fee payer.
    """
    payload = await _json_body(request)

    if not isinstance(payload, list):
        # Some webhook payloads wrap in an object
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("transactions", [payload]))
        if not isinstance(payload, list):
            logger.warning("helius_webhook: unexpected payload type %s", type(payload).__name__)
            raise HTTPException(status_code=400, detail="Expected array of transactions")

    recorded = 0
    for tx in payload:
        if not isinstance(tx, dict) or tx.get("type", "") != "SWAP":
            continue

        try:
            event = _parse_swap_event(tx)
        except (ValidationError, TypeError, ValueError) as e:
            logger.debug("helius_webhook: dropped malformed swap %s: %s", tx.get("signature", "?"), e)
            continue
        if event is None:
            continue

        try:
            store.record_transaction(
                event.token_address,
                event.wallet,
                event.direction,
                event.amount_sol,
                signature=event.signature,
                timestamp=event.timestamp,
            )
            recorded += 1
        except Exception as e:
            logger.warning(f"helius_webhook: failed to record {event.signature or event.token_address[:8]}: {e}")

    logger.debug("helius_webhook: recorded %d trades from %d transactions", recorded, len(payload))
    return {"status": "ok", "processed": recorded}


@router.post("/transactions")
async def transaction_events(request: Request, store: Store = Depends(get_store)):
    """Record pre-parsed trade events (single object or array)."""
    payload = await _json_body(request)
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise HTTPException(status_code=400, detail="Expected a transaction event or an array of them")

    recorded = 0
    for item in payload:
        try:
            event = TxEvent.model_validate(item)
        except ValidationError as e:
            logger.debug("transaction_events: dropped malformed event: %s", e.errors()[:1])
            continue
        store.record_transaction(
            event.token_address,
            event.wallet,
            event.direction,
            event.amount_sol,
            signature=event.signature,
            timestamp=event.timestamp,
        )
        recorded += 1

    return {"status": "ok", "processed": recorded, "dropped": len(payload) - recorded}


@router.post("/bonding-curve")
async def bonding_curve_update(request: Request, store: Store = Depends(get_store)):
    payload = await _json_body(request)
    try:
        update = BondingCurveUpdate.model_validate(payload)
    except ValidationError as e:
        logger.debug("bonding_curve_update: dropped malformed update: %s", e.errors()[:1])
        return {"status": "ignored", "tracked": False}

    tracked = store.update_bonding_curve(update.token_address, update.sol_balance)
    return {"status": "ok", "tracked": tracked}
