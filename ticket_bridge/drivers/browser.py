"""
Last-resort printing through the platform browser's print dialog.

Each copy gets its own standalone page that prints itself on load. The
dialog is fire-and-forget, so success here is optimistic.
"""

import asyncio
import logging
import tempfile
import webbrowser
from pathlib import Path
from typing import Awaitable, Callable

from ..documents import Document, render_html, render_page
from ..models import DEFAULT_PAPER_SIZE, PaperSize
from ..protocol import generate_uid
from . import DeliveryResult, Destination

logger = logging.getLogger('ticket.bridge.browser')

DEFAULT_STAGGER = 1.5


class BrowserDriver:

    name = 'browser'

    def __init__(
        self,
        stagger: float = DEFAULT_STAGGER,
        paper: PaperSize = DEFAULT_PAPER_SIZE,
        spool_dir: Path | None = None,
        opener: Callable[[str], bool] = webbrowser.open,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.stagger = stagger
        self.paper = paper
        self._spool_dir = Path(spool_dir) if spool_dir else None
        self._opener = opener
        self._sleep = sleep

    @property
    def spool_dir(self) -> Path:
        if self._spool_dir is None:
            self._spool_dir = Path(tempfile.mkdtemp(prefix='ticket-bridge-'))
        return self._spool_dir

    async def deliver(
        self,
        destination: Destination,
        document: Document,
        copies: int = 1,
    ) -> DeliveryResult:
        fragment = render_html(document, self.paper)
        if not fragment:
            return DeliveryResult(False, 'Nothing to print')

        title = document.title or destination.label.upper()
        page = render_page(fragment, self.paper, title=title)
        job = generate_uid()[:8]
        loop = asyncio.get_event_loop()

        for copy in range(1, max(1, copies) + 1):
            if copy > 1:
                # Concurrent print dialogs garble each other
                await self._sleep(self.stagger)

            path = self.spool_dir / f"{destination.ticket_type}-{job}-{copy}.html"
            try:
                path.write_text(page, encoding='utf-8')
            except OSError as e:
                logger.error(f"Could not write print page {path}: {e}")
                return DeliveryResult(False, f"Browser print failed: {e}")

            opened = await loop.run_in_executor(None, self._opener, path.as_uri())
            if opened is False:
                logger.warning(f"No browser available to print {path.name}")
            logger.info(f"{destination.label} copy {copy}/{copies} sent to browser print")

        return DeliveryResult(True, endpoint=str(self.spool_dir))
