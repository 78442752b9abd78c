"""
User License Collector
Enumerates: every directory user with display name, UPN, assigned licenses
and last sign-in, plus the tenant's subscribed SKUs for part-number lookup.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..graph.client import GraphClient, GraphAPIError
from ..models import Account

logger = logging.getLogger("m365_license_audit.collectors.users")

# Only the fields the audit needs; full user objects are never requested
USER_SELECT_FIELDS = "id,displayName,userPrincipalName,assignedLicenses,signInActivity"


class DirectoryFetchError(Exception):
    """Raised when the directory fetch fails. Terminal for the run."""

    def __init__(self, message: str, permission_denied: bool = False):
        self.permission_denied = permission_denied
        super().__init__(message)

    @property
    def remediation(self) -> str:
        if self.permission_denied:
            return (
                "Grant the app registration or signed-in account read access "
                "(User.Read.All, AuditLog.Read.All, Directory.Read.All) and re-run."
            )
        return "Check network connectivity and retry later."


def parse_graph_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a Graph ISO 8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        logger.debug(f"Unparseable sign-in timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class UserLicenseCollector:
    name = "users"
    description = "Directory users with license assignments and sign-in activity"

    def __init__(self, graph: GraphClient):
        self.graph = graph

    async def collect(self) -> list[Account]:
        """
        Fetch all accounts in directory order.
        Raises DirectoryFetchError on any Graph or transport failure.
        """
        started = time.time()
        logger.info(f"[{self.name}] Starting collection...")

        try:
            sku_names = await self._collect_sku_names()
            accounts = []
            async for user in self.graph.get_all_pages_stream(
                "users",
                params={"$select": USER_SELECT_FIELDS},
            ):
                accounts.append(self._to_account(user, sku_names))
        except GraphAPIError as e:
            raise DirectoryFetchError(
                f"Directory fetch failed: {e}",
                permission_denied=e.is_permission_error,
            ) from e
        except httpx.HTTPError as e:
            raise DirectoryFetchError(
                f"Directory fetch failed: {type(e).__name__}: {e}"
            ) from e

        logger.info(
            f"[{self.name}] Completed in {round(time.time() - started, 2)}s — "
            f"{len(accounts)} accounts"
        )
        return accounts

    async def _collect_sku_names(self) -> dict[str, str]:
        """Map skuId GUID → skuPartNumber for the tenant's subscriptions."""
        skus = await self.graph.get_all_pages(
            "subscribedSkus",
            params={"$select": "skuId,skuPartNumber"},
            skip_top=True,
        )
        return {
            s["skuId"].lower(): s["skuPartNumber"]
            for s in skus
            if s.get("skuId") and s.get("skuPartNumber")
        }

    @staticmethod
    def _to_account(user: dict, sku_names: dict[str, str]) -> Account:
        license_ids = []
        for lic in user.get("assignedLicenses") or []:
            sku_id = lic.get("skuId")
            if not sku_id:
                continue
            # Unknown SKUs keep their GUID so they can still be configured
            license_ids.append(sku_names.get(sku_id.lower(), sku_id))

        sign_in = user.get("signInActivity") or {}
        return Account(
            display_name=user.get("displayName") or "",
            user_principal_name=user.get("userPrincipalName") or "",
            license_ids=tuple(license_ids),
            last_sign_in=parse_graph_datetime(sign_in.get("lastSignInDateTime")),
        )
