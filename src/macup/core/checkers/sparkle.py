"""Sparkle appcast checker.

Sparkle apps publish an RSS "appcast" whose items carry an ``<enclosure>``
with the version in ``sparkle:shortVersionString`` (or the build number in
``sparkle:version``). Feeds that predate those attributes only have a
version in the item title, which is used as a fallback.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from macup.core.bundle import has_sparkle_framework, read_info_plist
from macup.core.checkers.base import Checker
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.exceptions import CheckerError
from macup.logger import get_logger

logger = get_logger(__name__)

SPARKLE_NS = "http://www.andymatuschak.org/xml-namespaces/sparkle"
_ATOM_NS = "http://www.w3.org/2005/Atom"

PRE_RELEASE_INDICATORS = (
    "beta",
    "alpha",
    "rc",
    "dev",
    "pre",
    "nightly",
    "canary",
)

_ENCLOSURE_RE = re.compile(r"<enclosure\b[^>]*>", re.DOTALL)
_NOTES_LINK_RE = re.compile(
    r"<sparkle:releaseNotesLink>\s*([^<]+?)\s*</sparkle:releaseNotesLink>"
)
_ITEM_RE = re.compile(r"<item\b.*?</item>", re.DOTALL)


def _sparkle(name: str) -> str:
    return f"{{{SPARKLE_NS}}}{name}"


@dataclass(frozen=True)
class AppcastItem:
    """One release advertised by an appcast."""

    version: str
    download_url: str | None = None
    release_notes_url: str | None = None
    description: str | None = None
    title: str | None = None
    channel: str | None = None


def is_pre_release(version: str, title: str | None = None) -> bool:
    """Return True if the version (or title) looks like a pre-release.

    Examples:
        >>> is_pre_release("2.0b3")
        False
        >>> is_pre_release("2.0-beta.3")
        True
        >>> is_pre_release("2.0", "Nightly build")
        True

    """
    haystacks = [version.lower()]
    if title:
        haystacks.append(title.lower())
    return any(
        indicator in text
        for text in haystacks
        for indicator in PRE_RELEASE_INDICATORS
    )


def extract_version_from_title(title: str) -> str | None:
    """Pull a version out of titles like ``Version 1.2.3`` or ``v1.2.3``."""
    stripped = title.strip()
    if stripped.startswith("Version "):
        stripped = stripped.removeprefix("Version ")
    elif stripped.startswith("v"):
        stripped = stripped.removeprefix("v")
    if stripped[:1].isdigit():
        return stripped
    return None


def _text(element: ET.Element, tag: str) -> str | None:
    value = element.findtext(tag)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _enclosure_item(item: ET.Element) -> AppcastItem | None:
    enclosure = item.find("enclosure")
    attrs = enclosure.attrib if enclosure is not None else {}
    version = (
        attrs.get(_sparkle("shortVersionString"))
        or attrs.get(_sparkle("version"))
        or _text(item, _sparkle("shortVersionString"))
        or _text(item, _sparkle("version"))
    )
    if not version:
        return None
    return AppcastItem(
        version=version.strip(),
        download_url=attrs.get("url"),
        release_notes_url=attrs.get(_sparkle("releaseNotesLink"))
        or _text(item, _sparkle("releaseNotesLink")),
        description=_text(item, "description"),
        title=_text(item, "title"),
        channel=_text(item, _sparkle("channel")),
    )


def _title_item(
    title: str | None, link: str | None, description: str | None
) -> AppcastItem | None:
    if not title:
        return None
    version = extract_version_from_title(title) or title.strip()
    return AppcastItem(
        version=version,
        download_url=link,
        release_notes_url=link,
        description=description,
        title=title,
    )


def _scan_enclosures(xml: str) -> list[AppcastItem]:
    """Attribute scan for feeds that are not well-formed XML."""

    def attr(block: str, name: str) -> str | None:
        match = re.search(rf'{re.escape(name)}="([^"]*)"', block)
        return match.group(1) if match else None

    items = []
    for item_block in _ITEM_RE.findall(xml) or [xml]:
        notes_link = _NOTES_LINK_RE.search(item_block)
        for block in _ENCLOSURE_RE.findall(item_block):
            version = attr(block, "sparkle:shortVersionString") or attr(
                block, "sparkle:version"
            )
            if not version:
                continue
            items.append(
                AppcastItem(
                    version=version,
                    download_url=attr(block, "url"),
                    release_notes_url=attr(block, "sparkle:releaseNotesLink")
                    or (notes_link.group(1) if notes_link else None),
                )
            )
    return items


def parse_appcast(xml: str) -> tuple[list[AppcastItem], list[AppcastItem]]:
    """Parse an appcast into enclosure items and title-only items.

    Returns:
        ``(enclosure_items, title_items)``; the second list is only
        consulted when the first yields nothing

    """
    try:
        root = ET.fromstring(xml)  # noqa: S314
    except ET.ParseError as e:
        logger.debug("Appcast is not well-formed XML (%s), scanning", e)
        return _scan_enclosures(xml), []

    enclosure_items: list[AppcastItem] = []
    title_items: list[AppcastItem] = []

    for item in root.iter("item"):
        parsed = _enclosure_item(item)
        if parsed is not None:
            enclosure_items.append(parsed)
        enclosure = item.find("enclosure")
        link = (
            enclosure.get("url") if enclosure is not None else None
        ) or _text(item, "link")
        fallback = _title_item(
            _text(item, "title"), link, _text(item, "description")
        )
        if fallback is not None:
            title_items.append(fallback)

    for entry in root.iter(f"{{{_ATOM_NS}}}entry"):
        link_el = entry.find(f"{{{_ATOM_NS}}}link")
        fallback = _title_item(
            _text(entry, f"{{{_ATOM_NS}}}title"),
            link_el.get("href") if link_el is not None else None,
            _text(entry, f"{{{_ATOM_NS}}}content")
            or _text(entry, f"{{{_ATOM_NS}}}summary"),
        )
        if fallback is not None:
            title_items.append(fallback)

    return enclosure_items, title_items


def best_newer_item(
    items: list[AppcastItem], current_version: str, *, check_title: bool
) -> AppcastItem | None:
    """Return the highest non-prerelease item newer than the current one."""
    best: AppcastItem | None = None
    for item in items:
        title = item.title if check_title else None
        if is_pre_release(item.version, title) or (
            item.channel and is_pre_release(item.channel)
        ):
            continue
        if not is_newer(current_version, item.version):
            continue
        if best is None or is_newer(best.version, item.version):
            best = item
    return best


async def _fetch_feed(session: aiohttp.ClientSession, feed_url: str) -> str:
    async with session.get(feed_url) as response:
        response.raise_for_status()
        return await response.text()


async def fetch_sparkle_description(
    feed_url: str, session: aiohttp.ClientSession
) -> str | None:
    """Return the description of the newest appcast item, if any.

    Never raises; release notes are a best-effort enrichment.
    """
    try:
        body = await _fetch_feed(session, feed_url)
    except (aiohttp.ClientError, TimeoutError) as e:
        logger.debug("Could not fetch appcast %s: %s", feed_url, e)
        return None

    enclosure_items, title_items = parse_appcast(body)
    for item in (*enclosure_items, *title_items):
        if item.description:
            return item.description
    return None


class SparkleChecker(Checker):
    """Reads the app's Sparkle appcast."""

    @property
    def source(self) -> SourceKind:
        return SourceKind.SPARKLE

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        if install_source is InstallSource.MAS:
            return False
        if has_sparkle_framework(app_path):
            return True
        plist = read_info_plist(app_path)
        return bool(plist and plist.get("SUFeedURL"))

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        feed_url = context.sparkle_feed_url
        if not feed_url:
            plist = read_info_plist(app_path) or {}
            feed_url = plist.get("SUFeedURL")
        if not feed_url:
            raise CheckerError("no SUFeedURL found", target=bundle_id)
        if current_version is None:
            logger.debug("Sparkle: no installed version for %s", bundle_id)
            return None

        body = await _fetch_feed(session, feed_url)
        enclosure_items, title_items = parse_appcast(body)
        if enclosure_items:
            best = best_newer_item(
                enclosure_items, current_version, check_title=False
            )
        else:
            best = best_newer_item(
                title_items, current_version, check_title=True
            )
        if best is None:
            return None

        logger.info(
            "Sparkle: %s has update %s -> %s",
            bundle_id,
            current_version,
            best.version,
        )
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=best.version,
            source=SourceKind.SPARKLE,
            download_url=best.download_url,
            release_notes_url=best.release_notes_url,
            release_notes=best.description,
        )
