"""
Data models for Melfina.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class OperationRequest(BaseModel):
    """A single logical intent to call (or deploy) the contract"""
    model_config = ConfigDict(frozen=True)

    operation: str
    arguments: Tuple[Any, ...] = ()
    is_deploy: bool = False


class SignedPayload(BaseModel):
    """One signed attempt at submitting an OperationRequest"""
    model_config = ConfigDict(frozen=True)

    data: str
    gas_limit: int
    gas_price: int
    nonce: int
    chain_id: int
    to: Optional[str] = None
    raw_transaction: bytes
    tx_hash: str


class TxReceipt(BaseModel):
    """Transaction receipt from the ledger"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(0, alias="gasUsed")
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class SubmissionOutcome(BaseModel):
    """
    Result of one logical submission.

    PENDING carries only the transaction hash (the network accepted it),
    CONFIRMED carries a successful receipt, FAILED carries a receipt for a
    transaction that was mined but reverted.
    """
    status: SubmissionStatus
    tx_hash: str
    nonce: int
    receipt: Optional[TxReceipt] = None
    reason: Optional[str] = None

    @classmethod
    def pending(cls, tx_hash: str, nonce: int) -> "SubmissionOutcome":
        return cls(status=SubmissionStatus.PENDING, tx_hash=tx_hash, nonce=nonce)

    @classmethod
    def from_receipt(cls, receipt: TxReceipt, nonce: int) -> "SubmissionOutcome":
        if receipt.succeeded:
            return cls(
                status=SubmissionStatus.CONFIRMED,
                tx_hash=receipt.tx_hash,
                nonce=nonce,
                receipt=receipt
            )
        return cls(
            status=SubmissionStatus.FAILED,
            tx_hash=receipt.tx_hash,
            nonce=nonce,
            receipt=receipt,
            reason=f"Transaction {receipt.tx_hash} reverted"
        )


class VerificationResult(BaseModel):
    """Whether a digest was previously notarized, and the checking transaction"""
    was_previously_stored: bool = Field(..., alias="notarized")
    transaction_hash: str = Field(..., alias="txHash")

    model_config = ConfigDict(populate_by_name=True)
