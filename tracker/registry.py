# tracker/registry.py
"""
Komponenten-Katalog und Erkennung.

Mehrere Deskriptoren können auf dasselbe Element passen (ein generischer
"button"-Deskriptor und ein spezieller "checkout continue"-Deskriptor).
detect() bewertet jeden Treffer und nimmt den spezifischsten.
"""
import json
import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from bs4 import Tag
from pydantic import ValidationError
from soupsieve import SoupSieve

from .dom import SELECTOR_ERRORS, compile_selector
from .schemas import Catalog, ComponentDescriptor

logger = logging.getLogger(__name__)

GENERIC_TAG_SELECTORS = {"button", "a", "form"}
GENERIC_ROLE_SELECTORS = {'[role="button"]', "[role='button']", "[role=button]"}

_QUOTED_RE = re.compile(r"\"[^\"]*\"|'[^']*'")
_ATTR_RE = re.compile(r"\[[^\]]*\]")
_CLASS_RE = re.compile(r"\.[A-Za-z_-][\w-]*")
_ID_RE = re.compile(r"#[A-Za-z_-][\w-]*")


class CatalogError(Exception):
    pass


def load_catalog(path: Union[str, Path]) -> List[ComponentDescriptor]:
    """
    Liest den Katalog aus einer JSON-Datei.
    Akzeptiert {"version": ..., "components": [...]} oder eine reine Liste.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise CatalogError(f"catalog {path} not readable: {e}") from e

    if isinstance(raw, list):
        raw = {"components": raw}
    try:
        catalog = Catalog.model_validate(raw)
    except ValidationError as e:
        raise CatalogError(f"catalog {path} invalid: {e}") from e

    logger.info("loaded %d components from %s (version %s)", len(catalog.components), path, catalog.version)
    return catalog.components


def score_selector(selector: str, direct: bool) -> float:
    sel = selector.strip()
    # Inhalte in Anführungszeichen zählen nicht als # oder .
    bare = _QUOTED_RE.sub('""', sel)
    outside_attrs = _ATTR_RE.sub("", bare)
    attr_clauses = _ATTR_RE.findall(bare)

    score = 0.0
    if _ID_RE.search(outside_attrs):
        score += 100
    if any(clause.lstrip("[").strip().startswith("data-") for clause in attr_clauses):
        score += 50
    score += 15 * len(attr_clauses)
    score += 10 * len(_CLASS_RE.findall(outside_attrs))
    if direct:
        score += 20
    score += min(len(sel), 100) / 10

    if sel.lower() in GENERIC_TAG_SELECTORS:
        score -= 50
    elif sel in GENERIC_ROLE_SELECTORS:
        score -= 30
    return score


class ComponentRegistry:
    def __init__(self, descriptors: Iterable[ComponentDescriptor] = ()):
        # Reihenfolge ist fest: bei Gleichstand gewinnt der zuerst gefundene
        self.descriptors: Tuple[ComponentDescriptor, ...] = tuple(descriptors)
        self._compiled = [(d, self._compile(d)) for d in self.descriptors]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ComponentRegistry":
        return cls(load_catalog(path))

    def __len__(self):
        return len(self.descriptors)

    @staticmethod
    def _compile(descriptor: ComponentDescriptor) -> List[Tuple[str, SoupSieve]]:
        """Selektoren einmal kompilieren; kaputte fallen einzeln raus."""
        compiled = []
        for selector in descriptor.selectors:
            try:
                compiled.append((selector, compile_selector(selector)))
            except SELECTOR_ERRORS as e:
                logger.warning("invalid selector %r in %s skipped: %s", selector, descriptor.name, e)
        return compiled

    def detect(self, element: Optional[Tag]) -> Optional[ComponentDescriptor]:
        if element is None or not self.descriptors:
            return None

        best: Optional[ComponentDescriptor] = None
        best_score = float("-inf")

        for descriptor, selectors in self._compiled:
            for selector, pattern in selectors:
                direct = pattern.match(element)
                if not direct and pattern.closest(element) is None:
                    continue

                score = score_selector(selector, direct)
                if score > best_score:
                    best, best_score = descriptor, score

        return best
