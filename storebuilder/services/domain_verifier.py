"""Post-deployment liveness checks."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class DomainVerifier:
    """Poll ``https://<domain>`` until it answers with a success status."""

    def __init__(
        self,
        request_timeout: float = 8.0,
        user_agent: str = "Store-Deployment-Verifier/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.request_timeout = request_timeout
        self.user_agent = user_agent
        self.transport = transport
        self._sleep = sleep

    async def verify_live(self, domain: str, max_attempts: int = 3, interval_ms: int = 2000) -> bool:
        """
        Check that a domain serves the deployed site.

        A ``HEAD`` request is sent up to ``max_attempts`` times, following
        redirects, with ``interval_ms`` between attempts and no wait after
        the last one. Network errors count as a failed attempt.

        Args:
            domain: Host name to check
            max_attempts: Number of requests to send
            interval_ms: Delay between attempts in milliseconds

        Returns:
            bool: True as soon as one attempt succeeds, False when attempts run out
        """
        url = f"https://{domain}"
        headers = {**DEFAULT_HEADERS, "User-Agent": self.user_agent}

        async with httpx.AsyncClient(
            timeout=self.request_timeout,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    response = await client.head(url, headers=headers)
                    if response.is_success:
                        logger.info(f"Domain {domain} is live (status {response.status_code}, attempt {attempt})")
                        return True
                    logger.info(
                        f"Domain {domain} not ready: status {response.status_code} "
                        f"(attempt {attempt}/{max_attempts})"
                    )
                except httpx.HTTPError as e:
                    logger.info(f"Domain {domain} not reachable: {e} (attempt {attempt}/{max_attempts})")

                if attempt < max_attempts:
                    await self._sleep(interval_ms / 1000)

        logger.warning(f"Domain {domain} not verified after {max_attempts} attempts")
        return False
