"""Best-effort enrichment of stored videos with their duration."""

from collections.abc import Sequence
import logging

from ..db import VideoDatabase
from ..db.types import Video
from ..exceptions import DurationLookupError
from ..worker.types import ProgressCallback
from .duration_lookup import DurationLookup
from .types import BackfillResult

logger = logging.getLogger(__name__)


class DurationBackfill:
    """Look up missing durations and store them in one batch.

    Attributes:
        _video_db: Database manager for video records.
        _lookup: Duration lookup collaborator.
    """

    def __init__(self, video_db: VideoDatabase, lookup: DurationLookup):
        self._video_db = video_db
        self._lookup = lookup

    async def backfill(
        self,
        videos: Sequence[Video],
        progress: ProgressCallback | None = None,
    ) -> BackfillResult:
        """Look up the duration of each video and store the ones found.

        A failed lookup is recorded and the next video is tried. All found
        durations are written in one transaction after the last lookup.

        Args:
            videos: Stored videos to enrich.
            progress: Optional callback receiving (fraction done, message).

        Returns:
            The updated videos and the lookup errors. Empty when no
            credential is configured.

        Raises:
            DatabaseOperationError: If the durations cannot be stored.
        """
        if not self._lookup.enabled:
            logger.debug("Duration lookup disabled, skipping backfill.")
            return BackfillResult()

        durations: dict[int, int] = {}
        found: list[tuple[Video, int]] = []
        errors: list[DurationLookupError] = []
        total = len(videos)
        for i, video in enumerate(videos):
            if progress:
                progress(i / total, f"Fetching duration for {video.title}...")
            try:
                duration = await self._lookup.lookup(video.external_id)
            except DurationLookupError as e:
                e.video_id = video.id
                e.title = video.title
                logger.warning(
                    "Duration lookup failed.",
                    extra={"video_id": video.id, "external_id": video.external_id},
                    exc_info=e,
                )
                errors.append(e)
                continue
            if duration is None or video.id is None:
                continue
            durations[video.id] = duration
            found.append((video, duration))

        await self._video_db.update_durations(durations)
        for video, duration in found:
            video.duration = duration
        if progress:
            progress(1.0, "Durations stored.")

        logger.info(
            "Duration backfill completed.",
            extra={"updated": len(found), "errors": len(errors)},
        )
        return BackfillResult(updated=[video for video, _ in found], errors=errors)

    async def backfill_missing(
        self, progress: ProgressCallback | None = None
    ) -> BackfillResult:
        """Backfill every stored video whose duration is unknown.

        Raises:
            DatabaseOperationError: If the store cannot be read or written.
        """
        if not self._lookup.enabled:
            logger.debug("Duration lookup disabled, skipping backfill.")
            return BackfillResult()
        videos = await self._video_db.get_videos(missing_duration=True)
        logger.info("Backfilling missing durations.", extra={"videos": len(videos)})
        return await self.backfill(videos, progress)
