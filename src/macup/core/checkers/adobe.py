"""Adobe Creative Cloud apps.

Adobe does not publish a public version feed. Sources, first hit wins:

1. ``RemoteUpdateManager --action=list`` when Adobe's admin tool exists
2. the cask index, guarded by ``brew outdated`` for managed casks
3. ``brew outdated --greedy`` through the cask token (Adobe casks are
   mostly ``version :latest``)
4. a changed cask fingerprint
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import aiohttp
import orjson

from macup.constants import ADOBE_RUM_PATH
from macup.core.cache.fingerprint import FingerprintVerdict
from macup.core.checkers.base import Checker
from macup.core.command import run_command
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.exceptions import CommandError
from macup.logger import get_logger

logger = get_logger(__name__)

RUM_TIMEOUT = 120.0
RUM_NOTE = "Update available (detected via Adobe Remote Update Manager)"

ADOBE_BUNDLE_IDS = frozenset(
    {
        "com.adobe.Photoshop",
        "com.adobe.Illustrator",
        "com.adobe.InDesign",
        "com.adobe.Lightroom",
        "com.adobe.LightroomClassicCC",
        "com.adobe.PremierePro",
        "com.adobe.AfterEffects",
        "com.adobe.Acrobat.Pro",
        "com.adobe.Reader",
        "com.adobe.AdobeMediaEncoder",
        "com.adobe.Audition",
        "com.adobe.Animate",
        "com.adobe.Dreamweaver",
        "com.adobe.bridge",
        "com.adobe.dimension",
        "com.adobe.substance.3d-painter",
        "com.adobe.InCopy",
        "com.adobe.Character.Animator",
        "com.adobe.Fresco",
        "com.adobe.XD",
    }
)
# Creative Cloud itself and its helpers are not creative tools
NON_TOOL_BUNDLE_IDS = frozenset(
    {"com.adobe.acc", "com.adobe.adobecreativecloud", "com.adobe.ccx.start"}
)

ADOBE_CASK_TOKENS = {
    "com.adobe.Photoshop": "adobe-photoshop",
    "com.adobe.Illustrator": "adobe-illustrator",
    "com.adobe.InDesign": "adobe-indesign",
    "com.adobe.PremierePro": "adobe-premiere-pro",
    "com.adobe.AfterEffects": "adobe-after-effects",
    "com.adobe.Lightroom": "adobe-lightroom",
    "com.adobe.LightroomClassicCC": "adobe-lightroom-classic",
    "com.adobe.Acrobat.Pro": "adobe-acrobat-pro",
    "com.adobe.Reader": "adobe-acrobat-reader",
    "com.adobe.AdobeMediaEncoder": "adobe-media-encoder",
    "com.adobe.Audition": "adobe-audition",
    "com.adobe.Animate": "adobe-animate",
    "com.adobe.Dreamweaver": "adobe-dreamweaver",
    "com.adobe.bridge": "adobe-bridge",
    "com.adobe.dimension": "adobe-dimension",
}

# Product codes used by Adobe's updater ("SAP codes")
SAP_CODES = {
    "com.adobe.Photoshop": "PHSP",
    "com.adobe.Illustrator": "ILST",
    "com.adobe.InDesign": "IDSN",
    "com.adobe.PremierePro": "PPRO",
    "com.adobe.AfterEffects": "AEFT",
    "com.adobe.Lightroom": "LTRM",
    "com.adobe.LightroomClassicCC": "LRCC",
    "com.adobe.Acrobat.Pro": "APRO",
    "com.adobe.AdobeMediaEncoder": "AME",
    "com.adobe.Audition": "AUDT",
    "com.adobe.Animate": "FLPR",
    "com.adobe.bridge": "KBRG",
    "com.adobe.Dreamweaver": "DRWV",
    "com.adobe.dimension": "ESHR",
    "com.adobe.Reader": "ARDR",
    "com.adobe.substance.3d-painter": "SBSTP",
    "com.adobe.InCopy": "AICY",
    "com.adobe.Character.Animator": "CHAR",
    "com.adobe.Fresco": "FRSC",
    "com.adobe.XD": "SPRK",
}

_APPLICATION_XML_TAG = "<{tag}>\\s*([^<]+?)\\s*</{tag}>"


def _case_insensitive(mapping: dict[str, str], key: str) -> str | None:
    lowered = key.lower()
    for candidate, value in mapping.items():
        if candidate.lower() == lowered:
            return value
    return None


def read_application_xml_version(app_path: Path) -> str | None:
    """Read ``Major.Minor.Patch`` from Adobe's ``application.xml``."""
    xml_path = app_path / "Contents" / "Resources" / "application.xml"
    try:
        content = xml_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None

    def element(tag: str) -> str | None:
        match = re.search(_APPLICATION_XML_TAG.format(tag=tag), content)
        return match.group(1) if match else None

    major = element("MajorVersion")
    if major is None:
        return None
    minor = element("MinorVersion") or "0"
    patch = element("PatchVersion") or "0"
    return f"{major}.{minor}.{patch}"


def precise_version(current: str, app_path: Path) -> str:
    """Prefer the ``application.xml`` version when it has more segments."""
    xml_version = read_application_xml_version(app_path)
    if xml_version and xml_version.count(".") > current.count("."):
        return xml_version
    return current


def product_matches_bundle(product_id: str, bundle_id: str) -> bool:
    """Return True if an updater product id refers to ``bundle_id``.

    Examples:
        >>> product_matches_bundle("Photoshop2025", "com.adobe.Photoshop")
        True
        >>> product_matches_bundle("PHSP_26", "com.adobe.Photoshop")
        True
        >>> product_matches_bundle("PHSPX", "com.adobe.Photoshop")
        False

    """
    product = product_id.lower()
    if bundle_id.startswith("com.adobe."):
        suffix = bundle_id.removeprefix("com.adobe.").lower()
        if product == suffix or (
            len(product) > len(suffix) and product.startswith(suffix)
        ):
            return True

    sap = SAP_CODES.get(bundle_id)
    if sap is None:
        return False
    sap = sap.lower()
    if product == sap:
        return True
    return (
        len(product) > len(sap)
        and product.startswith(sap)
        and product[len(sap)] in "_-."
    )


def _update_fields(item: dict) -> tuple[str, str] | None:
    product = item.get("product") if isinstance(item.get("product"), dict) else {}
    product_id = (
        item.get("productId")
        or item.get("sapCode")
        or item.get("id")
        or product.get("sapCode")
        or product.get("id")
    )
    version = (
        item.get("productVersion")
        or item.get("version")
        or item.get("availableVersion")
        or product.get("version")
    )
    if isinstance(product_id, str) and isinstance(version, str):
        return product_id, version
    return None


def parse_rum_output(stdout: str) -> list[tuple[str, str]]:
    """Extract ``(product_id, version)`` pairs from RUM's list output.

    JSON output is tried first, then ``CODE - version - name`` lines, then
    ``CODE/version`` lines.
    """
    try:
        data = orjson.loads(stdout)
    except orjson.JSONDecodeError:
        data = None
    if data is not None:
        items = data if isinstance(data, list) else []
        if isinstance(data, dict):
            items = data.get("updates") or []
        return [
            fields
            for item in items
            if isinstance(item, dict) and (fields := _update_fields(item))
        ]

    pairs = []
    for raw in stdout.splitlines():
        line = raw.strip()
        if not line or line.startswith(("#", "Following")):
            continue
        parts = line.split(" - ")
        if len(parts) >= 2:  # noqa: PLR2004
            pairs.append((parts[0].strip(), parts[1].strip()))
            continue
        if "/" in line:
            product_id, version = line.split("/", 1)
            pairs.append((product_id.strip(), version.strip()))
    return pairs


async def check_remote_update_manager(
    bundle_id: str, current_version: str
) -> str | None:
    """Return the newer version RUM reports for ``bundle_id``, if any."""
    if not Path(ADOBE_RUM_PATH).exists():
        return None
    try:
        output = await run_command(
            ADOBE_RUM_PATH, "--action=list", timeout=RUM_TIMEOUT
        )
    except CommandError as e:
        logger.info("Adobe CC: RemoteUpdateManager failed: %s", e)
        return None
    if not output.ok:
        logger.info(
            "Adobe CC: RemoteUpdateManager exited %d: %s",
            output.returncode,
            output.stderr.strip(),
        )
        return None

    for product_id, version in parse_rum_output(output.stdout):
        if product_matches_bundle(product_id, bundle_id) and is_newer(
            current_version, version
        ):
            return version
    return None


class AdobeCCChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.ADOBE_CC

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        lowered = bundle_id.lower()
        if any(lowered == known.lower() for known in ADOBE_BUNDLE_IDS):
            return True
        return (
            bundle_id.startswith("com.adobe.")
            and lowered not in NON_TOOL_BUNDLE_IDS
        )

    def _cask_token(
        self, bundle_id: str, app_path: Path, context: CheckContext
    ) -> str | None:
        if context.homebrew_cask_token:
            return context.homebrew_cask_token
        if context.cask_index is not None:
            token = context.cask_index.lookup_token(bundle_id, app_path)
            if token:
                return token
        return _case_insensitive(ADOBE_CASK_TOKENS, bundle_id)

    def _update(
        self,
        bundle_id: str,
        current: str,
        available: str,
        notes: str | None = None,
    ) -> UpdateInfo:
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current,
            available_version=available,
            source=SourceKind.ADOBE_CC,
            notes=notes,
        )

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        if current_version is None:
            logger.info("Adobe CC: no current version for %s", bundle_id)
            return None
        current = await asyncio.to_thread(
            precise_version, current_version, app_path
        )

        version = await check_remote_update_manager(bundle_id, current)
        if version is not None:
            logger.info(
                "Adobe CC: %s has update %s -> %s (RemoteUpdateManager)",
                bundle_id,
                current,
                version,
            )
            return self._update(bundle_id, current, version, RUM_NOTE)

        info = (
            context.cask_index.lookup(bundle_id, app_path)
            if context.cask_index is not None
            else None
        )
        if info is not None:
            if (
                context.homebrew_cask_token
                and context.brew_outdated is not None
                and info.token not in context.brew_outdated
            ):
                return None
            if is_newer(current, info.version):
                logger.info(
                    "Adobe CC: %s has update %s -> %s (cask: %s)",
                    bundle_id,
                    current,
                    info.version,
                    info.token,
                )
                return self._update(bundle_id, current, info.version)
            return None

        token = self._cask_token(bundle_id, app_path, context)
        if token is None:
            logger.info("Adobe CC: no cask token for %s", bundle_id)
            return None

        if context.brew_outdated is not None:
            outdated = context.brew_outdated.get(token)
            if outdated is not None and is_newer(
                current, outdated.current_version
            ):
                logger.info(
                    "Adobe CC: %s found in brew outdated via '%s'",
                    bundle_id,
                    token,
                )
                return self._update(
                    bundle_id,
                    current,
                    outdated.current_version,
                    "Update available via Homebrew",
                )

        if context.fingerprints is None:
            return None
        verdict = await context.fingerprints.check(token)
        if verdict is FingerprintVerdict.CHANGED:
            return self._update(
                bundle_id,
                current,
                f"{current} (newer build)",
                "Update detected via cask SHA change; reinstall via "
                "Homebrew or Creative Cloud",
            )
        if verdict is FingerprintVerdict.NO_CHECK:
            logger.info(
                "Adobe CC: %s uses sha256 :no_check, cannot detect updates",
                token,
            )
        return None
