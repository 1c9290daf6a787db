"""Text extraction and section slicing for SEC filing documents."""

import logging
import re
import warnings
from typing import Optional

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from marketstep.entities import FilingSections

logger = logging.getLogger(__name__)

# Inline XBRL filings open with an XML prolog but parse fine as HTML.
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

_WHITESPACE = re.compile(r"\s+")
_HTML_TAG = re.compile(r"<[a-z!/?][\s\S]*?>", re.IGNORECASE)
_NEXT_ITEM = re.compile(r"\bitem\s+\d+[a-z]?\s*\.", re.IGNORECASE)

# Heading patterns for the sections the analyzer reads.
_SECTION_HEADINGS = {
    "business": re.compile(r"\bitem\s+1\s*\.\s*business\b", re.IGNORECASE),
    "risk_factors": re.compile(r"\bitem\s+1a\s*\.\s*risk\s+factors\b", re.IGNORECASE),
    "management_discussion": re.compile(
        r"\bitem\s+7\s*\.\s*management\W{0,2}s\s+discussion", re.IGNORECASE
    ),
}


class TextExtractor:
    """
    Reduces filing markup to plain prose.

    This is best-effort extraction, not a structural parse: tags are
    dropped and every whitespace run becomes a single space, so the
    output has no paragraph or table structure left.
    """

    def extract(self, content: str) -> str:
        """
        Strip markup from content and collapse whitespace.

        Args:
            content: HTML, XML or plain text

        Returns:
            Single-spaced text, trimmed (may be empty)
        """
        if not content:
            return ""
        if self._is_html(content):
            return self._extract_from_html(content)
        return self._collapse_whitespace(content)

    def _is_html(self, text: str) -> bool:
        """Heuristic: any tag-looking token in the first 20KB."""
        return bool(_HTML_TAG.search(text[:20000]))

    def _extract_from_html(self, html_content: str) -> str:
        soup = BeautifulSoup(html_content, "lxml")

        # Remove script and style elements
        for element in soup(["script", "style", "meta", "link", "noscript", "head"]):
            element.decompose()

        # Inline XBRL keeps its hidden header facts in display:none blocks
        for element in soup.find_all(style=re.compile(r"display:\s*none", re.I)):
            element.decompose()

        return self._collapse_whitespace(soup.get_text(separator=" "))

    def _collapse_whitespace(self, text: str) -> str:
        return _WHITESPACE.sub(" ", text.replace("\xa0", " ")).strip()

    def extract_sections(self, text: str) -> FilingSections:
        """
        Slice the business, risk factor and MD&A sections out of filing text.

        Each section runs from its "Item N." heading to the next "Item"
        marker. A heading usually appears twice (table of contents and
        body), so the longest candidate is kept.

        Args:
            text: Filing prose, typically the output of extract()

        Returns:
            FilingSections; a section that can't be located is ""
        """
        found = {}
        for name, heading in _SECTION_HEADINGS.items():
            section = self._longest_section(text, heading)
            if section is None:
                logger.debug("Section %s not found", name)
                found[name] = ""
            else:
                found[name] = section
        return FilingSections(**found)

    def _longest_section(self, text: str, heading: re.Pattern) -> Optional[str]:
        best = None
        for match in heading.finditer(text):
            next_item = _NEXT_ITEM.search(text, match.end())
            end = next_item.start() if next_item else len(text)
            candidate = text[match.start():end].strip()
            if best is None or len(candidate) > len(best):
                best = candidate
        return best


_default_extractor = TextExtractor()


def html_to_text(content: str) -> str:
    """Module-level shortcut for TextExtractor().extract()."""
    return _default_extractor.extract(content)


def extract_sections(text: str) -> FilingSections:
    """Module-level shortcut for TextExtractor().extract_sections()."""
    return _default_extractor.extract_sections(text)


def truncate(text: str, limit: int) -> str:
    """Return at most `limit` characters of text."""
    if limit < 0:
        raise ValueError("limit must be non-negative")
    return text[:limit]
