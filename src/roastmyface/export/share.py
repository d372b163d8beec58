"""Delivering an exported card: native share when the host offers it, local save otherwise."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from roastmyface.errors import ShareError

if TYPE_CHECKING:
    from roastmyface.export.rasterize import ExportArtifact

logger = logging.getLogger(__name__)

NO_SHARE_NOTICE = "Sharing isn't supported here, so the roast card was saved instead."
SHARE_FAILED_NOTICE = "Sharing didn't work, so the roast card was saved instead."


class ShareMethod(StrEnum):
    NATIVE = "native"
    LOCAL_SAVE = "local_save"


@dataclass(frozen=True)
class ShareOutcome:
    method: ShareMethod
    path: Path | None = None
    notice: str | None = None


class ShareCapability(Protocol):
    """Host-provided share sheet."""

    def can_share(self, artifact: ExportArtifact) -> bool:
        """Return whether files of this kind can be shared."""
        ...

    async def share(self, artifact: ExportArtifact) -> None:
        """Hand the file to the host. Raises on failure or user abort."""
        ...


class NativeShare:
    def __init__(self, capability: ShareCapability) -> None:
        self._capability = capability

    def supports(self, artifact: ExportArtifact) -> bool:
        try:
            return self._capability.can_share(artifact)
        except Exception as exc:
            raise ShareError(f"Native share check failed: {exc}") from exc

    async def deliver(self, artifact: ExportArtifact) -> ShareOutcome:
        try:
            await self._capability.share(artifact)
        except Exception as exc:
            raise ShareError(f"Native share failed: {exc}") from exc
        logger.info("Shared %s natively", artifact.filename)
        return ShareOutcome(ShareMethod.NATIVE)


class LocalSave:
    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    async def deliver(self, artifact: ExportArtifact, notice: str | None = None) -> ShareOutcome:
        target = self._directory / artifact.filename
        await asyncio.to_thread(self._write, target, artifact.data)
        logger.info("Saved %s", target)
        return ShareOutcome(ShareMethod.LOCAL_SAVE, path=target, notice=notice)

    def _write(self, target: Path, data: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


async def share(
    artifact: ExportArtifact,
    *,
    local: LocalSave,
    native: ShareCapability | None = None,
) -> ShareOutcome:
    """Share the artifact, choosing the delivery route from what the host supports right now."""
    if native is None:
        return await local.deliver(artifact, notice=NO_SHARE_NOTICE)

    channel = NativeShare(native)
    try:
        if not channel.supports(artifact):
            return await local.deliver(artifact, notice=NO_SHARE_NOTICE)
        return await channel.deliver(artifact)
    except ShareError as exc:
        logger.warning("%s, falling back to local save", exc.message)
        return await local.deliver(artifact, notice=SHARE_FAILED_NOTICE)
