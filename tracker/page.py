# tracker/page.py
import re
from typing import Dict, List, Optional
from urllib.parse import parse_qsl, urlparse

from bs4 import BeautifulSoup, Tag

from .dom import select_one, text_of

NAVIGATION_TYPES = {"navigate", "reload", "back_forward"}

_IDENTIFIER_RE = re.compile(
    r"(\d|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$|^[0-9a-f]{16,}$)",
    re.IGNORECASE,
)


def path_segments(path: str) -> List[str]:
    return [seg for seg in path.split("/") if seg]


def is_identifier_segment(segment: str) -> bool:
    """'p1', '42', UUIDs, lange Hex-Strings -> True; 'projects' -> False"""
    return bool(_IDENTIFIER_RE.search(segment))


def last_named_segment(path: str) -> Optional[str]:
    for segment in reversed(path_segments(path)):
        if not is_identifier_segment(segment):
            return segment
    return None


class Page:
    """
    Die Seite, die der Tracker beobachtet: geparster DOM + Browser-Zustand,
    den es ohne Layout-Engine nicht gibt (URL, Scrollposition, Viewport).
    Der Host hält diese Werte aktuell.
    """

    def __init__(
        self,
        html: str,
        url: str,
        *,
        referrer: Optional[str] = None,
        viewport_height: float = 800,
        document_height: Optional[float] = None,
        navigation_type: str = "navigate",
        do_not_track: bool = False,
        parser: str = "html.parser",
    ):
        self.parser = parser
        self.soup = BeautifulSoup(html, parser)
        self.url = url
        self.referrer = referrer
        self.viewport_height = viewport_height
        self.document_height = document_height if document_height is not None else viewport_height
        self.navigation_type = navigation_type if navigation_type in NAVIGATION_TYPES else "navigate"
        self.do_not_track = do_not_track
        self.scroll_y: float = 0
        self.hidden = False

    # ---------- URL ----------

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"

    @property
    def query_params(self) -> Dict[str, str]:
        return dict(parse_qsl(urlparse(self.url).query))

    # ---------- DOM ----------

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    @property
    def title(self) -> str:
        if self.soup.title and self.soup.title.string:
            return self.soup.title.string.strip()
        return ""

    def query(self, selector: str) -> Optional[Tag]:
        return select_one(self.soup, selector)

    def load(self, html: str):
        """Neuer DOM (z.B. nach einer Client-Navigation)."""
        self.soup = BeautifulSoup(html, self.parser)
        self.scroll_y = 0

    def page_name(self) -> str:
        heading = self.query("h1")
        if heading is not None:
            text = text_of(heading)
            if text:
                return text[:100]
        segment = last_named_segment(self.path)
        if segment:
            return segment.replace("-", " ").replace("_", " ").title()
        return "Home"

    @property
    def scroll_percent(self) -> int:
        if not self.document_height:
            return 0
        return round((self.scroll_y + self.viewport_height) / self.document_height * 100)
