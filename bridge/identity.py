from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from shared.envelope import create_call
from shared.log import get_logger

logger = get_logger(__name__)

SELF_INFO_FUNC = "getSelfInfo"
SUCCESS_CODE = 0

Profile = Dict[str, Any]
IdentityEnricher = Callable[[int], Awaitable[Optional[Profile]]]


@dataclass
class SessionIdentity:
    """Who the helper endpoint says we are. Shared across reconnects."""
    uin: int = 0
    uid: str = ""
    profile: Optional[Profile] = None

    def is_known(self) -> bool:
        return self.uin != 0


class IdentityBootstrap:
    """
    One request/response exchange over HTTP asking the helper for self info.

    Runs beside the persistent socket, never through it, and never raises:
    a failed bootstrap leaves the previous identity in place.
    """

    def __init__(
        self,
        http_url: str,
        identity: SessionIdentity,
        enricher: Optional[IdentityEnricher] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ) -> None:
        self.http_url = http_url
        self.identity = identity
        self.enricher = enricher
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def run(self) -> bool:
        """Fetch self info; True when the identity was updated"""
        try:
            body = await self._post(create_call(SELF_INFO_FUNC).to_dict())
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Identity request to {self.http_url} failed: {e}")
            return False

        code = body.get("code") if isinstance(body, dict) else None
        if code != SUCCESS_CODE:
            logger.warning(f"Identity request returned code {code!r}")
            return False

        try:
            result = body["data"]["result"]
            uin = int(result["uin"])
            uid = str(result["uid"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed identity response: {e}")
            return False

        self.identity.uin = uin
        self.identity.uid = uid
        logger.info(f"Identity resolved: uin={uin} uid={uid}")

        await self._enrich(uin)
        return True

    async def _enrich(self, uin: int) -> None:
        if self.enricher is None:
            return
        try:
            profile = await self.enricher(uin)
        except Exception as e:
            logger.warning(f"Identity enrichment for {uin} failed: {e}")
            return
        if profile is None:
            logger.warning(f"No profile found for uin {uin}")
            return
        self.identity.profile = profile

    async def _post(self, payload: Dict[str, Any]) -> Any:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        async with self._session.post(
            self.http_url,
            json=payload,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            resp.raise_for_status()
            # Helpers do not always send application/json
            return await resp.json(content_type=None)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
