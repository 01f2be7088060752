"""The ``browser`` capability: screenshots of the running dev server.

Screenshots are taken with headless Chromium through Playwright and saved
under the transient directory, so they never land in the project tree.
A :class:`~devagent.agent.messaging.Screenshotter` on the tool context
replaces the Playwright backend.
"""

from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from devagent.agent.tools.registry import Tool, ToolContext
from devagent.llm.models import ToolDefinition

logger = logging.getLogger(__name__)

VIEWPORTS: dict[str, dict[str, int]] = {
    "desktop": {"width": 1280, "height": 800},
    "mobile": {"width": 390, "height": 844},
}

LAUNCH_ARGS = ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]


class PlaywrightScreenshotter:
    """Full-page PNG screenshots with headless Chromium.

    Args:
        output_dir: Directory the images are written to.
        base_url: Page captured when no URL is given.
        navigation_timeout_ms: How long to wait for the network to go idle.
            A page that never settles is captured as it stands.
        headless: Run the browser without a window.
    """

    def __init__(
        self,
        output_dir: Path,
        base_url: str = "http://localhost:5173",
        navigation_timeout_ms: int = 30_000,
        headless: bool = True,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.base_url = base_url
        self.navigation_timeout_ms = navigation_timeout_ms
        self.headless = headless

    async def capture(self, url: str | None = None, viewport: str = "desktop") -> str:
        target = url or self.base_url
        size = VIEWPORTS.get(viewport, VIEWPORTS["desktop"])
        self.output_dir.mkdir(parents=True, exist_ok=True)
        stamp = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
        path = self.output_dir / f"screenshot-{viewport}-{stamp}.png"

        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=self.headless, args=LAUNCH_ARGS)
            try:
                context = await browser.new_context(viewport=size)
                page = await context.new_page()
                try:
                    await page.goto(
                        target, wait_until="networkidle", timeout=self.navigation_timeout_ms
                    )
                except PlaywrightTimeoutError:
                    logger.warning("%s did not settle in time, capturing anyway", target)
                await page.screenshot(path=str(path), full_page=True)
            finally:
                await browser.close()

        logger.info("Saved %s screenshot of %s to %s", viewport, target, path)
        return str(path)


async def take_screenshot(arguments: dict[str, Any], ctx: ToolContext) -> str:
    shooter = ctx.screenshotter or PlaywrightScreenshotter(
        ctx.paths.workdir / ctx.paths.transient_dir / "screenshots",
        base_url=ctx.dev_server_url,
    )
    try:
        path = await shooter.capture(arguments.get("url"), arguments.get("viewport", "desktop"))
    except PlaywrightError as exc:
        logger.warning("Screenshot failed: %s", exc)
        return f"Error taking screenshot: {exc}"
    return f"Screenshot saved: {path}"


TAKE_SCREENSHOT_DEF = ToolDefinition(
    name="take_screenshot",
    description=(
        "Take a full-page screenshot of the running dev server (or another URL). "
        "Returns the saved image path."
    ),
    input_schema={
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "Page to capture. Default: dev server."},
            "viewport": {"type": "string", "enum": ["desktop", "mobile"]},
        },
    },
)


def create_tools() -> list[Tool]:
    return [Tool(TAKE_SCREENSHOT_DEF, take_screenshot)]
