"""
Sanitization for untrusted alert text.

Alert text from both upstream agencies is treated as untrusted and
passes through here before it reaches display or storage.
"""

import html
import re
from typing import Optional
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Comment

from sovereign.core.models import Alert

ALLOWED_TAGS = {"p", "br", "strong", "b", "em", "i", "ul", "ol", "li", "span", "div"}
ALLOWED_ATTRS = {"class"}
# 내용까지 통째로 제거하는 태그
FORBIDDEN_TAGS = [
    "script", "style", "iframe", "form", "input", "object", "embed",
    "link", "meta", "noscript", "textarea", "button", "svg", "template",
]

ALLOWED_SCHEMES = {"http", "https", "mailto"}
_RELATIVE_OK = re.compile(r"^(/[a-zA-Z0-9]|[a-zA-Z0-9])")
_DANGEROUS_SCHEME = re.compile(r"javascript:|data:|vbscript:", re.IGNORECASE)

_SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.I),
    re.compile(r"javascript:", re.I),
    re.compile(r"data:text/html", re.I),
    re.compile(r"vbscript:", re.I),
    re.compile(r"on\w+\s*=", re.I),
    re.compile(r"expression\s*\(", re.I),
    re.compile(r"<iframe", re.I),
    re.compile(r"<object", re.I),
    re.compile(r"<embed", re.I),
]


def _soup_without_forbidden(markup: str) -> BeautifulSoup:
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(FORBIDDEN_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    return soup


def sanitize_alert_html(markup: Optional[str]) -> str:
    """
    허용 목록 방식으로 HTML 을 정리합니다.

    금지 태그는 내용째 제거하고, 허용되지 않은 태그는 벗겨내며,
    허용 태그에는 class 속성만 남깁니다.
    """
    if not markup or not isinstance(markup, str):
        return ""
    soup = _soup_without_forbidden(markup)
    for tag in soup.find_all(True):
        if tag.name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        tag.attrs = {k: v for k, v in tag.attrs.items() if k in ALLOWED_ATTRS}
    return str(soup)


def sanitize_to_text(markup: Optional[str]) -> str:
    """모든 마크업을 제거하고 일반 텍스트만 반환합니다."""
    if not markup or not isinstance(markup, str):
        return ""
    return _soup_without_forbidden(markup).get_text().strip()


def sanitize_url(url: Optional[str]) -> Optional[str]:
    """
    href/src 용 URL 을 검사합니다.

    http, https, mailto 만 허용하고 javascript:, data:, vbscript: 등은
    거부합니다. 상대 경로는 의심 패턴이 없을 때만 허용합니다.

    Returns:
        허용된 URL (앞뒤 공백 제거) 또는 None
    """
    if not url or not isinstance(url, str):
        return None
    trimmed = url.strip()
    if not trimmed:
        return None

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        return None

    if parts.scheme:
        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            return None
        if parts.scheme.lower() in ("http", "https") and not parts.netloc:
            return None
        return trimmed

    if not _RELATIVE_OK.match(trimmed) or trimmed.startswith("//"):
        return None
    if _DANGEROUS_SCHEME.search(trimmed):
        return None
    return trimmed


def escape_html(text: Optional[str]) -> str:
    """태그 없이 HTML 에 넣을 문자열을 이스케이프합니다."""
    if not text or not isinstance(text, str):
        return ""
    return html.escape(text, quote=True)


def has_suspicious_content(text: Optional[str]) -> bool:
    """모니터링용 의심 패턴 검사"""
    if not text or not isinstance(text, str):
        return False
    return any(p.search(text) for p in _SUSPICIOUS_PATTERNS)


def sanitize_alert(alert: Alert) -> Alert:
    """경보의 표시용 필드를 모두 정리한 사본을 반환합니다."""
    return alert.model_copy(update={
        "headline": sanitize_to_text(alert.headline),
        "event": sanitize_to_text(alert.event),
        "area_desc": sanitize_to_text(alert.area_desc),
        "sender_name": sanitize_to_text(alert.sender_name),
        "description": sanitize_alert_html(alert.description),
        "instruction": sanitize_alert_html(alert.instruction),
        "link": sanitize_url(alert.link),
    })
