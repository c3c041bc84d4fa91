"""
Selector registry store.

Each logical page has one YAML file mapping element names to a selector,
a category tag and a short description. Healing either patches one named
entry or regenerates the whole file from a fresh page analysis. Every write
is atomic, and an overwritten file is first copied to the backup directory.
"""

import os
import shutil
import tempfile
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import yaml
from cssselect import GenericTranslator, SelectorError
from lxml import etree

from ..core.errors import RegistryPatchError
from ..core.healing_utils import guess_query_language, is_balanced, sanitize
from ..core.models.healing_models import (
    ElementCategory,
    QueryLanguage,
    RegistryEntry,
    SelectorRegistry
)
from .dom_analyzer import PageAnalysis

logger = logging.getLogger(__name__)


@dataclass
class SelectorCheck:
    """Result of checking one registry entry against a document."""
    name: str
    selector: str
    exists: bool
    error: Optional[str] = None


@dataclass
class RegistryHealthReport:
    """Per-page summary of how many registry selectors still match."""
    page_name: str
    total_selectors: int = 0
    valid_selectors: int = 0
    results: List[SelectorCheck] = field(default_factory=list)

    @property
    def invalid_selectors(self) -> int:
        return self.total_selectors - self.valid_selectors

    @property
    def health_percentage(self) -> float:
        if not self.total_selectors:
            return 100.0
        return round(self.valid_selectors / self.total_selectors * 100, 1)

    @property
    def is_healthy(self) -> bool:
        return self.valid_selectors == self.total_selectors

    @property
    def broken(self) -> List[str]:
        return [check.name for check in self.results if not check.exists]


class SelectorRegistryStore:
    """Loads, patches and regenerates per-page selector registries."""

    def __init__(self, registry_dir: Union[str, Path] = "build/selector-registries", backup_dir: Optional[str] = None):
        """Initialize the store.

        Args:
            registry_dir: Directory holding one ``<page>.yaml`` per page
            backup_dir: Directory for copies of overwritten registries.
                Defaults to ``<registry_dir>/backups``.
        """
        self.registry_dir = Path(registry_dir)
        self.backup_dir = Path(backup_dir) if backup_dir else self.registry_dir / "backups"
        self._translator = GenericTranslator()

    def path_for(self, page_name: str) -> Path:
        return self.registry_dir / f"{sanitize(page_name) or 'page'}.yaml"

    def exists(self, page_name: str) -> bool:
        return self.path_for(page_name).exists()

    def load(self, page_name: str) -> SelectorRegistry:
        """Load a page registry; a missing file yields an empty registry.

        Raises:
            RegistryPatchError: If the file exists but cannot be parsed
        """
        path = self.path_for(page_name)
        if not path.exists():
            return SelectorRegistry(page_name=page_name)

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RegistryPatchError(page_name, "*", f"unreadable registry file {path}: {e}") from e

        entries = {}
        for name, raw in (data.get("elements") or {}).items():
            # Plain "name: selector" lines are accepted too
            if isinstance(raw, str):
                raw = {"selector": raw}
            entries[str(name)] = RegistryEntry.from_dict(raw)

        regenerated_at = data.get("regenerated_at")
        return SelectorRegistry(
            page_name=data.get("page", page_name),
            entries=entries,
            regenerated_at=datetime.fromisoformat(regenerated_at) if regenerated_at else None
        )

    def save(self, registry: SelectorRegistry) -> Path:
        """Write a registry atomically, keeping a backup of the previous file."""
        path = self.path_for(registry.page_name)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            self._backup(path)

        data = {
            "page": registry.page_name,
            "regenerated_at": registry.regenerated_at.isoformat() if registry.regenerated_at else None,
            "elements": {name: entry.to_dict() for name, entry in registry.entries.items()}
        }

        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug(f"Saved selector registry for {registry.page_name} to {path}")
        return path

    def validate_selector(self, selector: str) -> Tuple[bool, Optional[str]]:
        """Check that a selector is well-formed.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not selector or not selector.strip():
            return False, "empty selector"
        if "\n" in selector:
            return False, "selector spans multiple lines"
        if not is_balanced(selector):
            return False, "unbalanced brackets or quotes"

        try:
            if guess_query_language(selector) == QueryLanguage.XPATH:
                etree.XPath(selector)
            else:
                self._translator.css_to_xpath(selector)
        except (SelectorError, etree.XPathSyntaxError) as e:
            return False, f"selector does not compile: {e}"

        return True, None

    def patch_entry(
        self,
        page_name: str,
        element_name: str,
        selector: str,
        category: Optional[ElementCategory] = None
    ) -> RegistryEntry:
        """Replace the selector of exactly one named entry.

        An entry that does not exist yet is added with the given category.

        Raises:
            RegistryPatchError: If the selector is malformed; the registry
                file is left untouched
        """
        selector = (selector or "").strip()
        is_valid, error = self.validate_selector(selector)
        if not is_valid:
            logger.warning(f"Rejected selector patch for {page_name}.{element_name}: {error}")
            raise RegistryPatchError(page_name, element_name, error)

        registry = self.load(page_name)
        previous = registry.entries.get(element_name)
        entry = RegistryEntry(
            selector=selector,
            category=category or (previous.category if previous else ElementCategory.OTHER),
            description=previous.description if previous else ""
        )
        registry.entries[element_name] = entry

        try:
            self.save(registry)
        except OSError as e:
            raise RegistryPatchError(page_name, element_name, f"write failed: {e}") from e

        old = previous.selector if previous else None
        logger.info(f"Patched {page_name}.{element_name}: {old!r} -> {selector!r}")
        return entry

    def regenerate(self, page_name: str, analysis: PageAnalysis) -> SelectorRegistry:
        """Rebuild a page's registry from scratch and overwrite the file."""
        registry = self.build_registry(page_name, analysis)
        self.save(registry)
        logger.info(
            f"Regenerated selector registry for {page_name} with {len(registry.entries)} entries"
        )
        return registry

    def build_registry(self, page_name: str, analysis: PageAnalysis) -> SelectorRegistry:
        """Map a page analysis to named, category-tagged entries."""
        registry = SelectorRegistry(page_name=page_name, regenerated_at=datetime.now())

        def add(base: str, suffix: str, selector: str, category: ElementCategory, description: str):
            is_valid, error = self.validate_selector(selector)
            if not is_valid:
                logger.debug(f"Skipping unusable selector {selector!r} during regeneration: {error}")
                return
            name = self._unique_name(registry, f"{sanitize(base) or category.value}_{suffix}")
            registry.entries[name] = RegistryEntry(selector=selector, category=category, description=description)

        for index, input_field in enumerate(analysis.inputs):
            add(input_field.name or f"input{index}", "input", input_field.selector, ElementCategory.INPUT,
                input_field.label or input_field.placeholder or f"Input field: {input_field.name}")
        for index, button in enumerate(analysis.buttons):
            add(button.text or f"button{index}", "button", button.selector, ElementCategory.BUTTON, button.text)
        for link in analysis.links:
            add(link.text, "link", link.selector, ElementCategory.LINK, link.href)
        for heading in analysis.headings:
            add(heading.text[:30], "heading", heading.selector, ElementCategory.HEADING,
                f"H{heading.level}: {heading.text}")
        for message in analysis.error_elements:
            add(self._selector_stem(message.selector), "error", message.selector, ElementCategory.ERROR,
                message.description)
        for message in analysis.success_elements:
            add(self._selector_stem(message.selector), "success", message.selector, ElementCategory.SUCCESS,
                message.description)
        for text_element in analysis.text_elements:
            add(text_element.text[:30], "text", text_element.selector, ElementCategory.TEXT, text_element.text)

        return registry

    def build_health_report(self, page_name: str, matcher: Dict[str, bool]) -> RegistryHealthReport:
        """Build a health report from per-entry match results.

        Args:
            page_name: Page whose registry is checked
            matcher: Entry name -> whether its selector matched

        Returns:
            RegistryHealthReport for the page
        """
        registry = self.load(page_name)
        report = RegistryHealthReport(page_name=page_name, total_selectors=len(registry.entries))

        for name, entry in registry.entries.items():
            exists = bool(matcher.get(name))
            report.results.append(SelectorCheck(
                name=name,
                selector=entry.selector,
                exists=exists,
                error=None if exists else "Selector did not match any elements"
            ))
            if exists:
                report.valid_selectors += 1
            else:
                logger.warning(f"Broken selector in {page_name}: {name} ({entry.selector})")

        return report

    async def validate_against(self, page_name: str, document) -> RegistryHealthReport:
        """Run every registry selector against a document accessor."""
        registry = self.load(page_name)
        matches: Dict[str, bool] = {}

        for name, entry in registry.entries.items():
            try:
                found = await document.find_all(entry.selector, guess_query_language(entry.selector))
                matches[name] = len(found) > 0
            except Exception as e:
                logger.debug(f"Selector {entry.selector!r} for {name} raised: {e}")
                matches[name] = False

        return self.build_health_report(page_name, matches)

    def _backup(self, path: Path) -> Optional[Path]:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = self.backup_dir / f"{path.stem}_{timestamp}{path.suffix}"
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, backup_path)
            logger.debug(f"Created registry backup: {backup_path}")
            return backup_path
        except OSError as e:
            logger.warning(f"Failed to back up registry {path}: {e}")
            return None

    @staticmethod
    def _unique_name(registry: SelectorRegistry, name: str) -> str:
        if name not in registry.entries:
            return name
        counter = 2
        while f"{name}_{counter}" in registry.entries:
            counter += 1
        return f"{name}_{counter}"

    @staticmethod
    def _selector_stem(selector: str) -> str:
        return selector.translate(str.maketrans("", "", "#.[]\"=")) or ""
