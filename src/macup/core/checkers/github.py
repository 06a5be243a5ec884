"""GitHub Releases checker.

The repository comes from the app record (a user override or the slug
the cask index discovered), else from a built-in map of popular open
source Mac apps.
"""

from __future__ import annotations

from pathlib import Path

import aiohttp

from macup.core.checkers.base import Checker
from macup.core.github import GitHubReleaseClient, find_macos_asset
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)

GITHUB_REPOS: dict[str, str] = {
    # Terminals and editors
    "com.googlecode.iterm2": "gnachman/iTerm2",
    "com.mitchellh.ghostty": "ghostty-org/ghostty",
    "io.alacritty": "alacritty/alacritty",
    "co.zeit.hyper": "vercel/hyper",
    "com.github.wez.wezterm": "wez/wezterm",
    "com.vscodium": "VSCodium/vscodium",
    "dev.zed.Zed": "zed-industries/zed",
    "com.lapce": "lapce/lapce",
    "com.neovide.neovide": "neovide/neovide",
    "com.github.GitHubClient": "desktop/desktop",
    # Window management and menu bar
    "com.knollsoft.Rectangle": "rxhanson/Rectangle",
    "com.lwouis.alt-tab-macos": "lwouis/alt-tab-macos",
    "com.amethyst.Amethyst": "ianyh/Amethyst",
    "org.pqrs.Karabiner-Elements": "pqrs-org/Karabiner-Elements",
    "com.p0deje.Maccy": "p0deje/Maccy",
    "com.jordanbaird.Ice": "jordanbaird/Ice",
    "com.linearmouse.LinearMouse": "linearmouse/linearmouse",
    "com.MonitorControl.MonitorControl": "MonitorControl/MonitorControl",
    "com.exelban.stats": "exelban/stats",
    "org.hammerspoon.Hammerspoon": "Hammerspoon/hammerspoon",
    "info.eurocomp.MeetingBar": "leits/MeetingBar",
    "com.alienator88.Pearcleaner": "alienator88/Pearcleaner",
    # Productivity
    "org.keepassxc.keepassxc": "keepassxreboot/keepassxc",
    "com.bitwarden.desktop": "bitwarden/clients",
    "md.obsidian": "obsidianmd/obsidian-releases",
    "com.logseq.logseq": "logseq/logseq",
    "org.zettlr.app": "Zettlr/Zettlr",
    "org.joplinapp.desktop": "laurent22/joplin",
    "com.standardnotes.app": "standardnotes/app",
    "com.appflowy.appflowy": "AppFlowy-IO/AppFlowy",
    "net.ankiweb.dtop": "ankitects/anki",
    "com.keka.Keka": "aonez/Keka",
    # Media
    "org.videolan.vlc": "videolan/vlc",
    "com.colliderli.iina": "iina/iina",
    "com.obsproject.obs-studio": "obsproject/obs-studio",
    "org.audacityteam.audacity": "audacity/audacity",
    "org.inkscape.Inkscape": "inkscape/inkscape",
    "fr.handbrake.HandBrake": "HandBrake/HandBrake",
    "net.kovidgoyal.calibre": "kovidgoyal/calibre",
    "com.ImageOptim.ImageOptim": "ImageOptim/ImageOptim",
    "org.shotcut.Shotcut": "mltframework/shotcut",
    "com.jellyfin.macos": "jellyfin/jellyfin-media-player",
    # Networking and security
    "com.objective-see.lulu.app": "objective-see/LuLu",
    "org.cryptomator": "cryptomator/cryptomator",
    "net.tunnelblick.tunnelblick": "Tunnelblick/Tunnelblick",
    "net.mullvad.vpn": "mullvad/mullvadvpn-app",
    "ch.sudo.cyberduck": "iterate-ch/cyberduck",
    # Developer tools
    "io.dbeaver.DBeaverCommunity": "dbeaver/dbeaver",
    "io.beekeeperstudio.desktop": "beekeeper-studio/beekeeper-studio",
    "com.insomnia.app": "Kong/insomnia",
    "io.httpie.desktop": "httpie/desktop",
    "com.hoppscotch.desktop": "hoppscotch/hoppscotch",
    # Chat
    "im.riot.app": "element-hq/element-desktop",
    "org.mattermost.desktop": "mattermost/desktop",
    "com.zulipchat.zulip-electron": "zulip/zulip-desktop",
}


def resolve_repo(bundle_id: str, context: CheckContext) -> str | None:
    """Return the ``owner/repo`` to query for ``bundle_id``."""
    repo = context.github_repo or GITHUB_REPOS.get(bundle_id)
    if not repo or repo.count("/") != 1:
        return None
    return repo


async def check_github_release(
    client: GitHubReleaseClient,
    repo: str,
    bundle_id: str,
    current_version: str | None,
    source: SourceKind = SourceKind.GITHUB,
) -> UpdateInfo | None:
    """Compare the latest published release of ``repo`` with the app.

    Args:
        client: Cycle-scoped releases client
        repo: ``owner/repo``
        bundle_id: App bundle identifier
        current_version: Installed version; nothing is reported without it
        source: Kind stamped on the result (Electron apps reuse this)

    Returns:
        UpdateInfo for a newer stable release, else None

    """
    if current_version is None:
        return None
    release = await client.latest_release(repo)
    if release is None or release.draft or release.prerelease:
        return None
    if not is_newer(current_version, release.version):
        return None

    asset = find_macos_asset(release.assets)
    logger.info(
        "GitHub: %s has update %s -> %s (%s)",
        bundle_id,
        current_version,
        release.version,
        repo,
    )
    return UpdateInfo(
        bundle_id=bundle_id,
        current_version=current_version,
        available_version=release.version,
        source=source,
        download_url=asset.browser_download_url if asset else None,
        release_notes_url=release.html_url,
        release_notes=release.body,
    )


class GitHubReleasesChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.GITHUB

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        # The repo is only known once the context is built
        return True

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        repo = resolve_repo(bundle_id, context)
        if repo is None or context.github is None:
            return None
        return await check_github_release(
            context.github, repo, bundle_id, current_version
        )
