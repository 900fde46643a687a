from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.request import Request, urlopen

import base58

from .errors import AccountNotFoundError, RemoteCallError


CLUSTER_URLS = {
    "devnet": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "local": "http://localhost:8899",
}
DEFAULT_CLUSTER = "devnet"
MAX_SIGNATURE_PAGE = 1000

USER_AGENT = "pyth-twap/0.1"


@dataclass(frozen=True)
class SignatureInfo:
    signature: str
    slot: int
    block_time: Optional[int]
    err: Any = None

    @property
    def failed(self) -> bool:
        return self.err is not None


@dataclass(frozen=True)
class TransactionInfo:
    signature: str
    slot: int
    block_time: Optional[int]
    err: Any
    instructions: Tuple[bytes, ...]

    @property
    def failed(self) -> bool:
        return self.err is not None


def cluster_url(cluster: str) -> str:
    try:
        return CLUSTER_URLS[cluster]
    except KeyError:
        raise ValueError(f"unknown cluster {cluster!r}; expected one of {sorted(CLUSTER_URLS)}") from None


class SolanaRpcClient:
    """Minimal blocking JSON-RPC client for the three calls the feed needs.

    One request is in flight at a time. ``retries`` bounds re-sends of a single
    call on transport failure; JSON-RPC errors returned by the node are not retried.
    """

    def __init__(self, url: str, timeout: float = 15.0, retries: int = 0, retry_wait: float = 0.5):
        self.url = url
        self.timeout = timeout
        self.retries = max(int(retries), 0)
        self.retry_wait = retry_wait
        self._request_id = 0

    def _post(self, body: bytes) -> Dict[str, Any]:
        req = Request(
            self.url,
            data=body,
            method="POST",
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )
        with urlopen(req, timeout=self.timeout) as resp:
            return json.loads(resp.read())

    def call(self, method: str, params: List[Any]) -> Any:
        self._request_id += 1
        body = json.dumps(
            {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        ).encode("utf-8")
        attempt = 0
        while True:
            try:
                response = self._post(body)
                break
            # URLError, HTTPError and socket timeouts are OSErrors; bad JSON is a ValueError
            except (OSError, ValueError) as e:
                if attempt >= self.retries:
                    raise RemoteCallError(f"{method} failed after {attempt + 1} attempt(s): {e}") from e
                attempt += 1
                time.sleep(self.retry_wait * attempt)
        if not isinstance(response, dict):
            raise RemoteCallError(f"{method}: unexpected response {response!r:.200}")
        if response.get("error") is not None:
            err = response["error"]
            if isinstance(err, dict):
                raise RemoteCallError(f"{method}: rpc error {err.get('code')}: {err.get('message')}")
            raise RemoteCallError(f"{method}: rpc error {err}")
        return response.get("result")

    def get_account_data(self, address: str) -> bytes:
        result = self.call("getAccountInfo", [address, {"encoding": "base64"}])
        value = (result or {}).get("value")
        if value is None:
            raise AccountNotFoundError(address)
        data = value.get("data") or ["", "base64"]
        try:
            return base64.b64decode(data[0])
        except (ValueError, TypeError) as e:
            raise RemoteCallError(f"getAccountInfo: undecodable data for {address}: {e}") from e

    def get_signatures_for_address(
        self, address: str, before: Optional[str] = None, limit: int = MAX_SIGNATURE_PAGE
    ) -> List[SignatureInfo]:
        """Return one page of signatures touching ``address``, newest first."""
        config: Dict[str, Any] = {"limit": min(max(int(limit), 1), MAX_SIGNATURE_PAGE)}
        if before is not None:
            config["before"] = before
        result = self.call("getSignaturesForAddress", [address, config]) or []
        return [
            SignatureInfo(
                signature=row["signature"],
                slot=int(row.get("slot") or 0),
                block_time=row.get("blockTime"),
                err=row.get("err"),
            )
            for row in result
        ]

    def get_transaction(self, signature: str) -> Optional[TransactionInfo]:
        """Fetch a confirmed transaction; None when the node no longer has it."""
        result = self.call(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
        )
        if result is None:
            return None
        meta = result.get("meta") or {}
        message = (result.get("transaction") or {}).get("message") or {}
        instructions = []
        for ix in message.get("instructions") or []:
            try:
                instructions.append(base58.b58decode(ix.get("data", "")))
            except ValueError as e:
                raise RemoteCallError(f"getTransaction: bad instruction data in {signature}: {e}") from e
        return TransactionInfo(
            signature=signature,
            slot=int(result.get("slot") or 0),
            block_time=result.get("blockTime"),
            err=meta.get("err"),
            instructions=tuple(instructions),
        )
