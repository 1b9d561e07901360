"""
Transaction submission through an HTTP signing relay.

The relay holds the account key, signs the given actions and broadcasts them to
the chain. This module only authorizes actions for the configured actor and
retries transport failures with jittered exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Dict, List, Optional

import httpx

log = logging.getLogger("dexbot")


class TransactionError(Exception):
    """A transaction could not be pushed after all attempts."""


class RelayTransactor:
    def __init__(
        self,
        signer_url: str,
        actor: str,
        permission: str = "active",
        token: Optional[str] = None,
        timeout: float = 10.0,
        attempts: int = 3,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = f"{signer_url.rstrip('/')}/transact"
        self.actor = actor
        self.permission = permission
        self.attempts = max(1, attempts)
        self.retry_backoff = retry_backoff
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(http2=True, timeout=timeout)
            self._owns_client = True

    @property
    def authorization(self) -> List[Dict[str, str]]:
        return [{"actor": self.actor, "permission": self.permission}]

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def transact(self, actions: List[Dict[str, Any]]) -> Dict[str, Any]:
        authorized = [{**action, "authorization": self.authorization} for action in actions]
        body = {"actions": authorized}
        backoff = self.retry_backoff
        last_err: Optional[str] = None
        for attempt in range(self.attempts):
            try:
                resp = await self.client.post(self.url, json=body, headers=self._headers)
                resp.raise_for_status()
                result = resp.json()
                if isinstance(result, dict) and result.get("error"):
                    raise TransactionError(str(result["error"]))
                return result if isinstance(result, dict) else {"result": result}
            except (httpx.HTTPError, ValueError, TransactionError) as exc:
                last_err = str(exc)
                if attempt + 1 >= self.attempts:
                    break
                log.warning(json.dumps({
                    "event": "rpc_retry",
                    "attempt": attempt + 1,
                    "actions": [a.get("name") for a in actions],
                    "err": last_err,
                }))
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
        log.error(json.dumps({"event": "rpc_failed", "attempts": self.attempts, "err": last_err}))
        raise TransactionError(f"transaction failed after {self.attempts} attempts: {last_err}")
