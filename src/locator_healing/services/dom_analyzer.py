"""
Structural page analysis for healing.

Builds a catalog of the page's inputs, buttons, links, headings and
error/success/text regions from raw markup. The catalog feeds the AI
inventory, the keyword heuristics and registry regeneration.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from bs4 import BeautifulSoup, Tag

from ..core.healing_utils import css_string, xpath_literal

logger = logging.getLogger(__name__)

_SIMPLE_IDENT = re.compile(r"^[A-Za-z_][\w-]*$")

BUTTON_NOISE = ("toggle", "menu", "nav", "hamburger", "search-btn")
LINK_NOISE = (
    "menu", "nav", "footer", "header", "copyright", "social",
    "facebook", "twitter", "linkedin", "instagram",
)
TEXT_NOISE = (
    "menu", "nav", "footer", "header", "copyright", "cookie",
    "advertisement", "ad-", "sidebar", "twitter", "facebook",
    "linkedin", "instagram", "contact-info", "social", "credit",
)
SUCCESS_KEYWORDS = ("logged in", "success", "congratulations", "welcome", "logged-in")
HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")


@dataclass
class InputField:
    name: str
    selector: str
    type: str
    required: bool = False
    placeholder: Optional[str] = None
    label: Optional[str] = None


@dataclass
class ButtonInfo:
    selector: str
    text: str
    type: str = "button"


@dataclass
class LinkInfo:
    selector: str
    text: str
    href: str


@dataclass
class HeadingInfo:
    selector: str
    level: int
    text: str


@dataclass
class MessageElement:
    """Error or success region."""
    selector: str
    description: str


@dataclass
class TextElement:
    selector: str
    text: str
    tag: str


@dataclass
class PageAnalysis:
    """Structural summary of one page."""
    title: str = "Unknown Page"
    description: str = "Web page"
    inputs: List[InputField] = field(default_factory=list)
    buttons: List[ButtonInfo] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)
    headings: List[HeadingInfo] = field(default_factory=list)
    error_elements: List[MessageElement] = field(default_factory=list)
    success_elements: List[MessageElement] = field(default_factory=list)
    text_elements: List[TextElement] = field(default_factory=list)
    tables: int = 0
    modals: int = 0


@dataclass
class DiscoveredElement:
    """Interactive element found on the page, with a suggested selector."""
    tag: str
    selector: str
    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    text: Optional[str] = None
    placeholder: Optional[str] = None
    aria_label: Optional[str] = None
    role: Optional[str] = None

    def summary(self) -> str:
        """One inventory line for AI prompts."""
        ident = f"#{self.id}" if self.id else ""
        name = f"[name={self.name}]" if self.name else ""
        label = self.text or self.placeholder or ""
        return f"- {self.tag}{ident}{name}: \"{label}\" (selector: {self.selector})"


class DOMAnalyzer:
    """Extracts a PageAnalysis and discoverable elements from HTML."""

    def __init__(self, parser: str = "lxml"):
        self.parser = parser

    def analyze(self, html: str) -> PageAnalysis:
        """Analyze page markup.

        Args:
            html: Serialized document markup

        Returns:
            PageAnalysis with every catalog populated (possibly empty)
        """
        soup = BeautifulSoup(html or "", self.parser)

        title_tag = soup.find("title")
        first_h1 = soup.find("h1")
        title = (
            (title_tag.get_text(strip=True) if title_tag else "")
            or (first_h1.get_text(strip=True) if first_h1 else "")
            or "Unknown Page"
        )

        errors = self._extract_error_elements(soup)
        successes = self._extract_success_elements(soup)
        claimed = self._selector_ids(errors) | self._selector_ids(successes)

        analysis = PageAnalysis(
            title=title,
            description=self._extract_description(soup),
            inputs=self._extract_inputs(soup),
            buttons=self._extract_buttons(soup),
            links=self._extract_links(soup),
            headings=self._extract_headings(soup),
            error_elements=errors,
            success_elements=successes,
            text_elements=self._extract_text_elements(soup, claimed),
            tables=len(soup.find_all("table")),
            modals=len(soup.select('[role="dialog"], .modal, [class*="modal"]'))
        )

        logger.debug(
            f"Analyzed page '{analysis.title}': {len(analysis.inputs)} inputs, "
            f"{len(analysis.buttons)} buttons, {len(analysis.headings)} headings"
        )
        return analysis

    def discover_elements(self, html: str) -> List[DiscoveredElement]:
        """List interactive elements in document order."""
        soup = BeautifulSoup(html or "", self.parser)
        query = ", ".join([
            "input", "button", "a", "select", "textarea",
            '[role="button"]', '[role="link"]', '[role="textbox"]',
            "[contenteditable]", "[aria-label]", "[data-testid]",
        ])

        elements = []
        for el in soup.select(query):
            text = el.get_text(strip=True)
            name = el.get("name")
            aria_label = el.get("aria-label")
            testid = el.get("data-testid")

            if el.get("id"):
                selector = self.id_selector(el["id"])
            elif name:
                selector = f"{el.name}[name={css_string(name)}]"
            elif aria_label:
                selector = f"{el.name}[aria-label={css_string(aria_label)}]"
            elif testid:
                selector = f"[data-testid={css_string(testid)}]"
            elif text and len(text) < 30:
                selector = f"//{el.name}[normalize-space(.)={xpath_literal(text)}]"
            else:
                selector = el.name

            elements.append(DiscoveredElement(
                tag=el.name,
                selector=selector,
                id=el.get("id"),
                name=name,
                type=el.get("type"),
                text=text or None,
                placeholder=el.get("placeholder"),
                aria_label=aria_label,
                role=el.get("role")
            ))

        return elements

    @staticmethod
    def id_selector(element_id: str) -> str:
        """CSS selector for an id, quoting ids that are not plain identifiers."""
        if _SIMPLE_IDENT.match(element_id):
            return f"#{element_id}"
        return f"[id={css_string(element_id)}]"

    def _extract_description(self, soup: BeautifulSoup) -> str:
        meta = soup.find("meta", attrs={"name": "description"})
        if meta and meta.get("content"):
            return meta["content"]
        for tag, limit in (("h1", None), ("p", 150)):
            found = soup.find(tag)
            if found and found.get_text(strip=True):
                return found.get_text(strip=True)[:limit]
        return "Web page"

    def _extract_inputs(self, soup: BeautifulSoup) -> List[InputField]:
        fields = []
        seen: Set[str] = set()

        for el in soup.find_all(["input", "textarea", "select"]):
            field_type = el.get("type") or el.name
            if field_type == "hidden":
                continue
            el_id = el.get("id")
            name = el.get("name") or el_id or ""
            if el_id:
                selector = self.id_selector(el_id)
            elif name:
                selector = f"[name={css_string(name)}]"
            else:
                continue
            if selector in seen:
                continue
            seen.add(selector)

            label_tag = soup.find("label", attrs={"for": el_id}) if el_id else None
            fields.append(InputField(
                name=name,
                selector=selector,
                type=field_type,
                required=el.has_attr("required"),
                placeholder=el.get("placeholder"),
                label=label_tag.get_text(strip=True) if label_tag else None
            ))

        return fields

    def _extract_buttons(self, soup: BeautifulSoup) -> List[ButtonInfo]:
        buttons = []
        seen: Set[str] = set()

        for el in soup.select('button, input[type="submit"], input[type="button"], input[type="reset"]'):
            text = el.get_text(strip=True) or el.get("value") or el.get("aria-label") or ""
            if not text or self._is_noise(el, BUTTON_NOISE):
                continue

            button_type = el.get("type") or ("submit" if el.name == "button" else "button")
            if el.get("id"):
                selector = self.id_selector(el["id"])
            elif el.name == "input":
                selector = f"input[type={css_string(button_type)}]"
            else:
                selector = f"//button[normalize-space(.)={xpath_literal(text)}]"

            if selector not in seen:
                seen.add(selector)
                buttons.append(ButtonInfo(selector=selector, text=text, type=button_type))

        return buttons

    def _extract_links(self, soup: BeautifulSoup) -> List[LinkInfo]:
        links = []
        seen: Set[str] = set()

        for el in soup.find_all("a", href=True):
            text = el.get_text(strip=True)
            href = el["href"]
            if href.startswith("#") or not text or len(text) > 100:
                continue
            if self._is_noise(el, LINK_NOISE):
                continue

            selector = self.id_selector(el["id"]) if el.get("id") else f"a[href={css_string(href)}]"
            if selector not in seen:
                seen.add(selector)
                links.append(LinkInfo(selector=selector, text=text, href=href))

        return links

    def _extract_headings(self, soup: BeautifulSoup) -> List[HeadingInfo]:
        headings = []
        seen: Set[str] = set()

        for level, tag in enumerate(HEADING_TAGS, start=1):
            for el in soup.find_all(tag):
                text = el.get_text(strip=True)
                if not text or len(text) >= 200:
                    continue
                classes = el.get("class") or []
                if el.get("id"):
                    selector = self.id_selector(el["id"])
                elif classes:
                    selector = f"{tag}.{classes[0]}"
                else:
                    selector = tag

                if selector not in seen:
                    seen.add(selector)
                    headings.append(HeadingInfo(selector=selector, level=level, text=text))

        return headings

    def _extract_error_elements(self, soup: BeautifulSoup) -> List[MessageElement]:
        return self._extract_messages(
            soup,
            '[class*="error"], [role="alert"], .alert-danger, [id*="error"]',
            "Error message",
            "Generic error element"
        )

    def _extract_success_elements(self, soup: BeautifulSoup) -> List[MessageElement]:
        found = self._extract_messages(
            soup,
            '[class*="success"], .alert-success, [class*="confirmation"], [id*="success"]',
            "Success message",
            "Generic success element"
        )
        seen = {m.selector for m in found}

        for el in soup.find_all(["h1", "h2", "h3", "p", "div"]):
            text = el.get_text(strip=True)
            if not any(keyword in text.lower() for keyword in SUCCESS_KEYWORDS):
                continue
            selector = self._element_selector(el)
            if selector and selector not in seen:
                seen.add(selector)
                found.append(MessageElement(selector=selector, description=f"Success message: {text[:50]}"))

        return found

    def _extract_messages(self, soup: BeautifulSoup, query: str, label: str, fallback: str) -> List[MessageElement]:
        messages = []
        seen: Set[str] = set()

        for el in soup.select(query):
            selector = self._element_selector(el, tag_prefix=False)
            if not selector or selector in seen:
                continue
            seen.add(selector)
            text = el.get_text(strip=True)[:50]
            messages.append(MessageElement(selector=selector, description=f"{label}: {text or fallback}"))

        return messages

    def _extract_text_elements(self, soup: BeautifulSoup, claimed_ids: Set[str]) -> List[TextElement]:
        elements = []
        seen: Set[str] = set()
        seen_text: Set[str] = set()

        for tag in HEADING_TAGS + ("p", "div", "article"):
            for el in soup.find_all(tag):
                el_id = el.get("id") or ""
                if el_id and el_id in claimed_ids:
                    continue
                if self._is_noise(el, TEXT_NOISE):
                    continue
                if el.find(["form", "input", "button", "textarea", "select"]):
                    continue
                if tag not in HEADING_TAGS and el.find(list(HEADING_TAGS)):
                    continue

                text = el.get_text(strip=True)
                if len(text) < 10 or len(text) > 300:
                    continue
                if text[:50] in seen_text:
                    continue
                seen_text.add(text[:50])

                selector = self._element_selector(el)
                if selector and selector not in seen:
                    seen.add(selector)
                    elements.append(TextElement(selector=selector, text=text[:100], tag=tag))

        return elements

    def _element_selector(self, el: Tag, tag_prefix: bool = True) -> Optional[str]:
        if el.get("id"):
            return self.id_selector(el["id"])
        classes = el.get("class") or []
        if classes:
            return f"{el.name}.{classes[0]}" if tag_prefix else f".{classes[0]}"
        return el.name if tag_prefix else None

    @staticmethod
    def _is_noise(el: Tag, patterns) -> bool:
        ident = (el.get("id") or "").lower()
        classes = " ".join(el.get("class") or []).lower()
        return any(p in ident or p in classes for p in patterns)

    @staticmethod
    def _selector_ids(messages: List[MessageElement]) -> Set[str]:
        ids = set()
        for message in messages:
            match = re.match(r"#([\w-]+)$", message.selector)
            if match:
                ids.add(match.group(1))
        return ids

    def catalog(self, analysis: PageAnalysis) -> Dict[str, int]:
        """Counts per catalog, for logging and prompts."""
        return {
            "inputs": len(analysis.inputs),
            "buttons": len(analysis.buttons),
            "links": len(analysis.links),
            "headings": len(analysis.headings),
            "errors": len(analysis.error_elements),
            "successes": len(analysis.success_elements),
            "texts": len(analysis.text_elements),
        }
