"""Browser-driven retrieval of a Webex personal access token.

Opens the Webex developer portal in a Playwright-controlled Chromium with a
persistent profile, lets the user complete sign-in (SSO, 2FA) by hand, and
reads the personal access token once the portal displays it. The profile
keeps the portal session, so later refreshes usually need no interaction.
"""

import asyncio
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

from webex_mcp.errors import AuthUnavailable
from webex_mcp.models import TokenRecord
from webex_mcp.utils import utcnow

logger = logging.getLogger(__name__)

PORTAL_URL = "https://developer.webex.com/docs/getting-started"

# Personal access tokens are issued for 12 hours
PERSONAL_TOKEN_LIFETIME = timedelta(hours=12)

# <random>_<cluster>_<org uuid>
TOKEN_PATTERN = re.compile(
    r"\b[A-Za-z0-9]{40,}_[A-Z0-9]{2,6}_"
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}\b"
)

# JS collecting visible text plus form values (the token may sit in an input)
_COLLECT_TEXT_JS = """
() => {
    const values = Array.from(document.querySelectorAll('input, textarea, code, pre'))
        .map(el => el.value || el.textContent || '');
    return [document.body ? document.body.innerText : '', ...values].join('\\n');
}
"""


def find_token(text: str) -> str | None:
    """Return the first personal access token found in page text."""
    match = TOKEN_PATTERN.search(text or "")
    return match.group(0) if match else None


class PersonalTokenFetcher:
    """Interactive credential fetcher for auto-refresh mode.

    Args:
        profile_dir: Persistent Chromium profile directory.
        portal_url: Page that shows the personal access token once signed in.
        timeout: Seconds to wait for the token to appear.
        headless: Run without a window (only useful with a signed-in profile).
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        profile_dir: Path,
        portal_url: str = PORTAL_URL,
        timeout: int = 300,
        headless: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.profile_dir = Path(profile_dir)
        self.portal_url = portal_url
        self.timeout = timeout
        self.headless = headless
        self._clock = clock

    async def fetch(self) -> TokenRecord:
        """Drive the portal until a token is visible.

        Raises:
            AuthUnavailable: If playwright is missing, the window is closed,
                or no token shows up within the timeout.
        """
        try:
            from playwright.async_api import async_playwright
        except ImportError as e:
            raise AuthUnavailable(
                "playwright is not installed. Run: pip install playwright && "
                "playwright install chromium"
            ) from e

        self.profile_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Opening %s to obtain a personal access token...", self.portal_url)

        async with async_playwright() as p:
            context = await p.chromium.launch_persistent_context(
                str(self.profile_dir), headless=self.headless
            )
            try:
                page = context.pages[0] if context.pages else await context.new_page()
                await page.goto(self.portal_url, wait_until="domcontentloaded")
                token = await self._wait_for_token(page)
            finally:
                await context.close()

        expires_at = self._clock() + PERSONAL_TOKEN_LIFETIME
        logger.info("Personal access token captured")
        return TokenRecord(token=token, expires_at=expires_at)

    async def _wait_for_token(self, page) -> str:
        logger.info("Waiting for sign-in... complete the login in the browser window")
        last_url = ""

        for i in range(self.timeout):
            try:
                url = page.url
                if url != last_url:
                    logger.debug("URL changed: %s...", url[:80])
                    last_url = url

                token = find_token(await page.evaluate(_COLLECT_TEXT_JS))
                if token:
                    return token

                if i > 0 and i % 30 == 0:
                    logger.info("Still waiting for the token... (%ss)", i)

            except Exception as e:
                err_str = str(e).lower()
                if "target closed" in err_str or "has been closed" in err_str:
                    raise AuthUnavailable("Browser window was closed before sign-in completed") from e
                if not any(kw in err_str for kw in ("navigation", "destroyed")):
                    logger.debug("Token lookup error: %s", e)

            await asyncio.sleep(1)

        raise AuthUnavailable(
            f"Personal access token not found within {self.timeout} seconds."
        )
