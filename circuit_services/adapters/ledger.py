"""
Ledger submission collaborator.

The ledger records that a proof was produced for a task by a user:

    submit_proof(ProofSubmission) -> transaction id
    complete_task(task_id, proof_hash, user_id, recipient=None) -> LedgerReceipt

``complete_task`` is the composite variant: it submits the proof and has the
ledger mint an achievement token, returning its serial.

Two implementations:

- ``HttpLedgerClient`` talks JSON over HTTP (httpx) to a ledger gateway at
  ``LEDGER_URL``.
- ``InMemoryLedger`` keeps submissions in process memory. It is what you get
  when no ledger is configured, and it says so in the logs.

Retry/availability policy belongs to the ledger side; failures here surface
once as ``LedgerError``.
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import httpx

from ..errors import LedgerError
from ..logging import get_logger

log = get_logger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ProofSubmission:
    task_id: str
    user_id: str
    proof_hash: str
    timestamp: int = field(default_factory=now_ms)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "userId": self.user_id,
            "proofHash": self.proof_hash,
            "timestamp": self.timestamp,
            "metadata": self.metadata,
        }


@dataclass
class LedgerReceipt:
    transaction_id: str
    token_serial: Optional[str] = None


class LedgerClient(Protocol):
    def submit_proof(self, submission: ProofSubmission) -> str:
        ...

    def complete_task(
        self, task_id: str, proof_hash: str, user_id: str, recipient: Optional[str] = None
    ) -> LedgerReceipt:
        ...


class InMemoryLedger:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._serials: Dict[str, itertools.count] = {}
        self.submissions: List[ProofSubmission] = []
        log.warning("ledger_in_memory", detail="LEDGER_URL not set; submissions are kept in process memory only")

    def submit_proof(self, submission: ProofSubmission) -> str:
        with self._lock:
            self.submissions.append(submission)
            tx = f"mem-{next(self._seq)}@{submission.timestamp}"
        log.info("ledger_submit", transaction_id=tx, task_id=submission.task_id, proof_hash=submission.proof_hash)
        return tx

    def complete_task(
        self, task_id: str, proof_hash: str, user_id: str, recipient: Optional[str] = None
    ) -> LedgerReceipt:
        tx = self.submit_proof(
            ProofSubmission(task_id=task_id, user_id=user_id, proof_hash=proof_hash, metadata={"version": "1.0"})
        )
        with self._lock:
            counter = self._serials.setdefault(task_id, itertools.count(1))
            serial = str(next(counter))
        return LedgerReceipt(transaction_id=tx, token_serial=serial)


class HttpLedgerClient:
    """
    JSON gateway client.

    POST {base}/submissions           body: ProofSubmission -> {"transactionId"}
    POST {base}/tasks/{id}/complete   body: {proofHash, userId, recipient} ->
                                      {"transactionId", "tokenSerial"}
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        headers = {"accept": "application/json"}
        if api_key:
            headers["authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self._client.post(path, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise LedgerError(
                f"Ledger rejected request: HTTP {e.response.status_code}",
                errors=[e.response.text[:500] or str(e)],
                details={"path": path, "status": e.response.status_code},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise LedgerError(f"Ledger unreachable: {e}", details={"path": path}) from e
        if not isinstance(data, dict) or "transactionId" not in data:
            raise LedgerError("Ledger response missing transactionId", details={"path": path})
        return data

    def submit_proof(self, submission: ProofSubmission) -> str:
        data = self._post("/submissions", submission.to_wire())
        return str(data["transactionId"])

    def complete_task(
        self, task_id: str, proof_hash: str, user_id: str, recipient: Optional[str] = None
    ) -> LedgerReceipt:
        data = self._post(
            f"/tasks/{quote(task_id, safe='')}/complete",
            {"proofHash": proof_hash, "userId": user_id, "recipient": recipient, "timestamp": now_ms()},
        )
        serial = data.get("tokenSerial")
        return LedgerReceipt(transaction_id=str(data["transactionId"]), token_serial=str(serial) if serial else None)


def ledger_from_config(cfg) -> LedgerClient:
    if cfg.ledger_url:
        return HttpLedgerClient(cfg.ledger_url, api_key=cfg.ledger_api_key, timeout=cfg.ledger_timeout)
    return InMemoryLedger()


__all__ = [
    "ProofSubmission",
    "LedgerReceipt",
    "LedgerClient",
    "InMemoryLedger",
    "HttpLedgerClient",
    "ledger_from_config",
]
