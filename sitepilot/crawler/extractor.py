"""Structural DOM extraction from a loaded page."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from sitepilot.constants import MAX_CONTENT_CHARS, MAX_LINKS_PER_PAGE
from sitepilot.models.domain import ButtonInfo, FormInfo, InputInfo, LinkInfo, PageRecord

if TYPE_CHECKING:
    from playwright.async_api import Page

logger = structlog.get_logger(__name__)

# Selectors are positional (tag:nth-of-type chains from <body>), never ids or
# classes; they are stable within one page load only.
EXTRACT_JS = """
(limits) => {
    const structural = (el) => {
        const path = [];
        let node = el;
        while (node && node.nodeType === 1 && node !== document.body
               && node !== document.documentElement) {
            const tag = node.tagName.toLowerCase();
            let index = 1;
            let sib = node.previousElementSibling;
            while (sib) {
                if (sib.tagName === node.tagName) index++;
                sib = sib.previousElementSibling;
            }
            path.unshift(tag + ':nth-of-type(' + index + ')');
            node = node.parentElement;
        }
        return path.length ? 'body > ' + path.join(' > ') : 'body';
    };
    const describeInput = (input) => ({
        selector: structural(input),
        type: input.getAttribute('type') || input.tagName.toLowerCase(),
        name: input.getAttribute('name') || '',
        placeholder: input.getAttribute('placeholder') || '',
        required: input.hasAttribute('required'),
    });
    const forms = Array.from(document.querySelectorAll('form')).map(form => ({
        selector: structural(form),
        action: form.getAttribute('action') || '',
        method: (form.getAttribute('method') || 'GET').toUpperCase(),
        inputs: Array.from(form.querySelectorAll('input, select, textarea')).map(describeInput),
    }));
    const buttons = Array.from(document.querySelectorAll(
        'button, input[type="submit"], input[type="button"]'
    )).map(btn => ({
        selector: structural(btn),
        text: (btn.textContent || '').trim() || btn.getAttribute('value') || '',
        type: btn.getAttribute('type') || 'button',
    }));
    const links = Array.from(document.querySelectorAll('a[href]'))
        .slice(0, limits.maxLinks)
        .map(link => ({
            selector: structural(link),
            text: (link.textContent || '').trim(),
            href: link.href || link.getAttribute('href') || '',
        }));
    const inputs = Array.from(document.querySelectorAll(
        'input:not([type="submit"]):not([type="button"]), select, textarea'
    )).map(describeInput);
    const body = document.body ? document.body.innerText || '' : '';
    return {
        title: document.title || '',
        content: body.slice(0, limits.maxContent),
        forms, buttons, links, inputs,
    };
}
"""


class DomExtractor:
    """Turns a loaded Playwright page into a PageRecord."""

    def __init__(
        self,
        max_content_chars: int = MAX_CONTENT_CHARS,
        max_links: int = MAX_LINKS_PER_PAGE,
    ) -> None:
        self._max_content_chars = max_content_chars
        self._max_links = max_links

    async def extract(self, page: Page, url: str) -> PageRecord:
        """Extract title, capped text content, forms, buttons, links and inputs."""
        raw: dict[str, Any] = await page.evaluate(
            EXTRACT_JS,
            {"maxLinks": self._max_links, "maxContent": self._max_content_chars},
        )
        return self.build_record(url, raw)

    def build_record(self, url: str, raw: dict[str, Any]) -> PageRecord:
        """Build a PageRecord from the raw evaluate() payload, enforcing caps."""
        links = [
            LinkInfo(**link)
            for link in raw.get("links", [])[: self._max_links]
            if link.get("href")
        ]
        record = PageRecord(
            url=url,
            title=(raw.get("title") or "").strip(),
            content=(raw.get("content") or "")[: self._max_content_chars],
            forms=[FormInfo(**form) for form in raw.get("forms", [])],
            buttons=[ButtonInfo(**button) for button in raw.get("buttons", [])],
            links=links,
            inputs=[InputInfo(**inp) for inp in raw.get("inputs", [])],
        )
        logger.debug(
            "page_extracted",
            url=url,
            forms=len(record.forms),
            buttons=len(record.buttons),
            links=len(record.links),
            inputs=len(record.inputs),
        )
        return record
