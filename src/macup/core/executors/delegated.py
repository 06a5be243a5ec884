"""Fallback executor: open the app and let it update itself."""

from __future__ import annotations

from pathlib import Path

from macup.core.bundle import open_target
from macup.core.executors.base import Executor
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult

CREATIVE_CLOUD_BUNDLE_ID = "com.adobe.acc.AdobeCreativeCloud"


class DelegatedExecutor(Executor):
    """Launches the app, or a helper app, and reports a hand-off.

    The result is never independently verified.
    """

    def __init__(
        self,
        helper_bundle_id: str | None = None,
        helper_name: str | None = None,
        source: SourceKind = SourceKind.DELEGATED,
    ) -> None:
        """Initialize the executor.

        Args:
            helper_bundle_id: Open this app instead of the one being updated
            helper_name: Display name of the helper app
            source: Source kind reported in the result

        """
        self.helper_bundle_id = helper_bundle_id
        self.helper_name = helper_name or helper_bundle_id
        self._source = source

    @property
    def source(self) -> SourceKind:
        return self._source

    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        if self.helper_bundle_id:
            target = self.helper_name
            args: tuple[str, ...] = ("-b", self.helper_bundle_id)
            message = f"Opened {target} to apply updates"
        else:
            target = str(app_path)
            args = (target,)
            message = f"Opened {target}. The app will handle updating itself."

        progress.report(0, f"Opening {target} to trigger self-update")
        if await open_target(*args):
            progress.report(100, "App opened for self-update")
            return UpdateResult.delegated_to(bundle_id, self.source, message)

        failure = f"Failed to open {target}"
        progress.report(100, failure)
        return UpdateResult(
            bundle_id=bundle_id,
            success=False,
            message=failure,
            source=self.source,
            delegated=True,
        )
