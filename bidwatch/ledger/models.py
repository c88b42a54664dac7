"""Typed views over the ledger indexer's JSON payloads."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..transport.timestamps import from_epoch_ms


@dataclass(frozen=True)
class Utxo:
    transaction_id: str
    index: int
    amount: int

    @property
    def utxo_id(self) -> str:
        return f"{self.transaction_id}:{self.index}"

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "Utxo":
        outpoint = item.get("outpoint") or {}
        entry = item.get("utxoEntry") or item.get("entry") or {}
        transaction_id = outpoint.get("transactionId")
        if not transaction_id:
            raise ValueError("utxo outpoint missing transactionId")
        return cls(
            transaction_id=str(transaction_id),
            index=int(outpoint.get("index", 0)),
            amount=int(entry.get("amount", 0)),
        )


@dataclass(frozen=True)
class TransactionInput:
    previous_outpoint_address: str | None = None
    previous_outpoint_hash: str | None = None
    previous_outpoint_index: int | None = None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "TransactionInput":
        index = item.get("previous_outpoint_index")
        return cls(
            previous_outpoint_address=item.get("previous_outpoint_address") or None,
            previous_outpoint_hash=item.get("previous_outpoint_hash") or None,
            previous_outpoint_index=int(index) if index not in (None, "") else None,
        )


@dataclass(frozen=True)
class TransactionOutput:
    amount: int
    address: str | None

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "TransactionOutput":
        return cls(
            amount=int(item.get("amount", 0)),
            address=item.get("script_public_key_address") or item.get("address"),
        )


@dataclass(frozen=True)
class TransactionRecord:
    transaction_id: str
    inputs: tuple[TransactionInput, ...] = ()
    outputs: tuple[TransactionOutput, ...] = ()
    is_accepted: bool = False
    accepting_block_blue_score: int | None = None
    block_time: int | None = None

    @classmethod
    def from_api(cls, transaction_id: str, payload: dict[str, Any]) -> "TransactionRecord":
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected transaction payload for {transaction_id}")
        blue_score = payload.get("accepting_block_blue_score")
        block_time = payload.get("block_time")
        return cls(
            transaction_id=str(payload.get("transaction_id") or transaction_id),
            inputs=tuple(TransactionInput.from_api(i) for i in payload.get("inputs") or []),
            outputs=tuple(TransactionOutput.from_api(o) for o in payload.get("outputs") or []),
            is_accepted=bool(payload.get("is_accepted", False)),
            accepting_block_blue_score=int(blue_score) if blue_score is not None else None,
            block_time=int(block_time) if block_time is not None else None,
        )

    def output_address(self, index: int | None) -> str | None:
        if index is None or index < 0 or index >= len(self.outputs):
            return None
        return self.outputs[index].address


@dataclass(frozen=True)
class VerifiedTransaction:
    """A transaction as seen by the ledger, with its payer resolved when possible."""

    transaction_id: str
    is_accepted: bool
    blue_score: int | None
    outputs: tuple[TransactionOutput, ...] = field(default_factory=tuple)
    sender: str | None = None
    timestamp: datetime | None = None

    @classmethod
    def from_record(cls, record: TransactionRecord, sender: str | None) -> "VerifiedTransaction":
        return cls(
            transaction_id=record.transaction_id,
            is_accepted=record.is_accepted,
            blue_score=record.accepting_block_blue_score,
            outputs=record.outputs,
            sender=sender,
            timestamp=from_epoch_ms(record.block_time),
        )

    def has_output_near(self, amount: int, tolerance: int, address: str | None = None) -> bool:
        """True when an output paying ``address`` lies strictly within ``tolerance`` of ``amount``."""
        return any(
            abs(output.amount - amount) < tolerance
            for output in self.outputs
            if address is None or output.address == address
        )
