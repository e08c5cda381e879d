"""
Structured content snapshot read by condition evaluators.

The snapshot is produced by an external extractor; this module only defines
its shape and a tolerant loader for the serialized form.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class LanguageInfo:
    declared: Optional[str] = None
    detected: Optional[str] = None


@dataclass
class TextContent:
    headings: List[str] = field(default_factory=list)
    paragraphs: List[str] = field(default_factory=list)
    buttons: List[str] = field(default_factory=list)


@dataclass
class EcommerceInfo:
    currencies: List[str] = field(default_factory=list)
    payment_methods: List[str] = field(default_factory=list)


@dataclass
class PerformanceInfo:
    load_time_ms: Optional[float] = None
    mobile_load_time_ms: Optional[float] = None
    resource_bytes: Optional[int] = None
    touch_target_issues: int = 0


def _strings(values: Any) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        return [values]
    return [str(v) for v in values]


@dataclass
class ContentSnapshot:
    """
    A page as seen by the scoring engine.

    Attributes:
        url: Page URL
        language: Declared (markup) and detected (content) language codes
        text: Headings, paragraphs and button labels
        images: Image records, e.g. {"src": ..., "alt": ...}
        links: Link records, e.g. {"text": ..., "href": ...}
        meta: Meta tag name -> content
        ecommerce: Displayed currencies and offered payment methods
        performance: Timing and size measurements
        colors: Dominant colour names
        holidays: Holidays referenced by the content
        signals: Trigger names precomputed by the extractor
    """

    url: str = ""
    language: LanguageInfo = field(default_factory=LanguageInfo)
    text: TextContent = field(default_factory=TextContent)
    images: List[Dict[str, Any]] = field(default_factory=list)
    links: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, str] = field(default_factory=dict)
    ecommerce: EcommerceInfo = field(default_factory=EcommerceInfo)
    performance: PerformanceInfo = field(default_factory=PerformanceInfo)
    colors: List[str] = field(default_factory=list)
    holidays: List[str] = field(default_factory=list)
    signals: List[str] = field(default_factory=list)

    def search_text(self) -> str:
        """Lower-cased text of every human-readable part of the page."""
        parts: List[str] = []
        parts.extend(self.text.headings)
        parts.extend(self.text.paragraphs)
        parts.extend(self.text.buttons)
        for link in self.links:
            parts.append(str(link.get("text", "")))
            parts.append(str(link.get("href", "")))
        parts.extend(str(img.get("alt", "")) for img in self.images)
        parts.extend(str(v) for v in self.meta.values())
        return " ".join(p for p in parts if p).lower()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ContentSnapshot":
        """Create from a serialized snapshot; missing sections take defaults."""
        data = data or {}
        language = data.get("language") or {}
        if isinstance(language, str):
            language = {"declared": language}
        text = data.get("text") or {}
        ecommerce = data.get("ecommerce") or {}
        performance = data.get("performance") or {}

        return cls(
            url=data.get("url") or "",
            language=LanguageInfo(
                declared=language.get("declared"), detected=language.get("detected")
            ),
            text=TextContent(
                headings=_strings(text.get("headings")),
                paragraphs=_strings(text.get("paragraphs")),
                buttons=_strings(text.get("buttons")),
            ),
            images=[dict(i) for i in data.get("images") or []],
            links=[dict(link) for link in data.get("links") or []],
            meta={str(k): str(v) for k, v in (data.get("meta") or {}).items()},
            ecommerce=EcommerceInfo(
                currencies=_strings(ecommerce.get("currencies")),
                payment_methods=_strings(ecommerce.get("payment_methods")),
            ),
            performance=PerformanceInfo(
                load_time_ms=performance.get("load_time_ms"),
                mobile_load_time_ms=performance.get("mobile_load_time_ms"),
                resource_bytes=performance.get("resource_bytes"),
                touch_target_issues=int(performance.get("touch_target_issues") or 0),
            ),
            colors=_strings(data.get("colors")),
            holidays=_strings(data.get("holidays")),
            signals=_strings(data.get("signals")),
        )
