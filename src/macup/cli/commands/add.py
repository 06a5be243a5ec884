"""Add command handler: register an application from its bundle."""

import asyncio
import re
import sys
from argparse import Namespace
from dataclasses import replace
from pathlib import Path

from macup.cli.commands.base import BaseCommandHandler
from macup.config import Paths
from macup.core.brew import brew_path, is_cask_installed
from macup.core.bundle import BundleInfo, has_mas_receipt, read_bundle
from macup.domain.models import AppRecord, InstallSource
from macup.exceptions import StoreError
from macup.logger import get_logger

logger = get_logger(__name__)

_REPO_RE = re.compile(r"^[^/\s]+/[^/\s]+$")
_MAS_ID_RE = re.compile(r"^[0-9]+$")


async def detect_install_source(
    app_path: Path, cask_token: str | None, formula: str | None
) -> InstallSource:
    """Guess how an app was installed when the user did not say.

    An App Store receipt wins, then a Homebrew cask that brew reports as
    installed, then a named formula. Anything else is a direct download.
    """
    if has_mas_receipt(app_path):
        return InstallSource.MAS
    if cask_token:
        brew = brew_path()
        if brew and await is_cask_installed(brew, cask_token):
            return InstallSource.HOMEBREW
    if formula:
        return InstallSource.HOMEBREW_FORMULA
    return InstallSource.DIRECT


class AddHandler(BaseCommandHandler):
    """Handler for the add command."""

    async def execute(self, args: Namespace) -> None:
        """Register (or re-register) the app at ``args.path``."""
        app_path = Paths.expand_path(args.path)
        info = await asyncio.to_thread(read_bundle, app_path)
        if info is None:
            logger.error("Not an application bundle: %s", app_path)
            print(f"❌ Not an application bundle: {app_path}")
            sys.exit(1)

        problem = self._validate(args)
        if problem:
            print(f"❌ {problem}")
            sys.exit(1)

        record = await self._build_record(info, args)
        try:
            self.store.update_app(record)
        except StoreError as e:
            logger.error("Failed to register %s: %s", info.bundle_id, e)  # noqa: TRY400
            print(f"❌ {e}")
            sys.exit(1)

        logger.info(
            "Registered %s (%s) as %s",
            record.bundle_id,
            record.installed_version,
            record.install_source.value,
        )
        print(
            f"✅ Added {record.name} ({record.bundle_id}) "
            f"{record.installed_version or 'unknown version'}"
        )

    @staticmethod
    def _validate(args: Namespace) -> str | None:
        if args.repo and not _REPO_RE.match(args.repo):
            return f"--repo must look like owner/repo, got '{args.repo}'"
        if args.mas_id and not _MAS_ID_RE.match(args.mas_id):
            return f"--mas-id must be numeric, got '{args.mas_id}'"
        return None

    async def _build_record(
        self, info: BundleInfo, args: Namespace
    ) -> AppRecord:
        existing = self.store.get_app(info.bundle_id)
        base = existing or AppRecord(
            bundle_id=info.bundle_id,
            name=info.display_name,
            path=info.path,
        )
        cask = args.cask or base.homebrew_cask_token
        formula = args.formula or base.homebrew_formula_name
        if args.source:
            source = InstallSource(args.source)
        elif existing and existing.install_source is not InstallSource.UNKNOWN:
            source = existing.install_source
        else:
            source = await detect_install_source(info.path, cask, formula)

        return replace(
            base,
            name=info.display_name,
            path=info.path,
            installed_version=info.installed_version,
            install_source=source,
            homebrew_cask_token=cask,
            homebrew_formula_name=formula,
            sparkle_feed_url=args.feed
            or info.sparkle_feed_url
            or base.sparkle_feed_url,
            github_repo=args.repo or base.github_repo,
            mas_app_id=args.mas_id or base.mas_app_id,
        )
