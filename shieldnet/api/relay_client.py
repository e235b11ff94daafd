# shieldnet/api/relay_client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from shieldnet import config
from shieldnet.errors import CalldataLayoutError, RelayRejected
from shieldnet.wallet.calldata import RELAYABLE_KINDS, Calldata
from shieldnet.wallet.shielded_wallet import SubmitReceipt

LOG = logging.getLogger("shieldnet.relay_client")
LOG.addHandler(logging.NullHandler())


class RelayClient:
    """
    Submitter that hands proven calldata to a relayer and blocks until the
    relayer reports confirmation. Relayer slots may be left zeroed; the
    relayer overwrites them.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or config.RELAYER_URL).rstrip("/")
        self.timeout = timeout or config.RELAY_TIMEOUT_SEC
        self.session = session or requests.Session()

    def submit(self, kind: str, calldata: Calldata, public_inputs: Dict[str, str]) -> SubmitReceipt:
        if kind not in RELAYABLE_KINDS:
            raise CalldataLayoutError(f"'{kind}' cannot be relayed")
        payload = {
            "type": kind,
            "calldata": calldata.to_decimal_strings(),
            "public_inputs": dict(public_inputs),
        }
        LOG.info("relaying %s (%d felts)", kind, len(calldata))
        try:
            r = self.session.post(f"{self.base_url}/relay", json=payload, timeout=self.timeout)
        except requests.ConnectTimeout as e:
            raise RelayRejected("Relayer unreachable", details=str(e)) from e
        except requests.RequestException as e:
            # the relayer may already have broadcast the call
            LOG.warning("relay of %s ended without a reply: %s", kind, e)
            raise RelayRejected(
                "Relayer request failed; outcome unknown",
                details=str(e),
                outcome_unknown=True,
            ) from e

        try:
            body = r.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            # a gateway error page says nothing about whether the call went out
            raise RelayRejected(
                f"Relayer returned non-JSON HTTP {r.status_code}",
                details=r.text[:500],
                outcome_unknown=r.status_code >= 500,
            )
        if r.status_code == 200 and body.get("status") == "success":
            return SubmitReceipt(
                tx_hash=str(body.get("txHash", "")),
                execution_status=str(body.get("executionStatus", "SUCCEEDED")),
            )
        raise RelayRejected(
            str(body.get("error") or f"Relayer returned HTTP {r.status_code}"),
            details=body.get("details"),
            tx_hash=body.get("txHash"),
        )

    def health(self) -> Dict[str, Any]:
        try:
            r = self.session.get(f"{self.base_url}/health", timeout=10)
        except requests.RequestException as e:
            return {"status": "unreachable", "error": str(e)}
        body = self._json(r)
        body.setdefault("http_status", r.status_code)
        return body

    @staticmethod
    def _json(r: requests.Response) -> Dict[str, Any]:
        try:
            body = r.json()
        except ValueError:
            return {"error": f"Relayer returned non-JSON HTTP {r.status_code}", "details": r.text[:500]}
        return body if isinstance(body, dict) else {"error": "Relayer returned a non-object body"}
