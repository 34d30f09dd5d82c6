"""
merges a video record's coarse status with the live encoding job into one
user-facing label and progress value.

rules, first match wins:
  1. video published / publish_manual -> done. the only completion signal;
     a finished job is not enough because publishing lags it.
  2. video failed / encoding_failed, or job failed / cancelled -> failed.
  3. video uploaded -> waiting for the encoder.
  4. job present -> queued / downloading / encoding / publishing from the job.
  5. otherwise -> label from the video status alone.

progress never drops below the floor implied by the video status, so a
stale job report can't move the bar backwards.
"""
from dataclasses import dataclass
from typing import Optional

from upload_service.models import EncodingJob, VideoRecord, VideoStatus

WAITING_PROGRESS = 3.0
IPFS_PROGRESS = 5.0
QUEUED_PROGRESS = 10.0
DOWNLOAD_START, DOWNLOAD_END = 10.0, 30.0
ENCODE_START, ENCODE_END = 30.0, 95.0
# held below 100 until the video itself is published
PUBLISHING_PROGRESS = 97.0
DONE_PROGRESS = 100.0

JOB_DONE_STATUSES = {"complete", "completed"}
JOB_FAILED_STATUSES = {"failed", "cancelled"}

# reconciler phase -> coarse bucket for the in-progress summary
COARSE_PHASES = {
    "waiting": "queued",
    "queued": "queued",
    "ipfs": "encoding",
    "preparing": "encoding",
    "downloading": "encoding",
    "encoding": "encoding",
    "publishing": "finishing",
    "published": "finishing",
    "failed": "failed",
}

_FALLBACK = {
    VideoStatus.ENCODING_IPFS: ("ipfs", "Uploading to IPFS..."),
    VideoStatus.ENCODING_PREPARING: ("preparing", "Preparing encoding job..."),
    VideoStatus.ENCODING_PROGRESS: ("encoding", "Encoding in progress... {pct:.0f}%"),
    VideoStatus.ENCODING_COMPLETED: ("publishing", "Encoding complete! Publishing..."),
}


@dataclass
class StatusView:
    label: str
    progress: float
    phase: str
    is_complete: bool = False
    is_failed: bool = False
    download_pct: Optional[float] = None
    encode_pct: Optional[float] = None
    source: str = "video"

    @property
    def is_terminal(self) -> bool:
        return self.is_complete or self.is_failed

    @property
    def coarse_phase(self) -> str:
        return COARSE_PHASES.get(self.phase, "encoding")

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "progress": round(self.progress, 1),
            "phase": self.phase,
            "isComplete": self.is_complete,
            "isFailed": self.is_failed,
            "isTerminal": self.is_terminal,
            "downloadPct": self.download_pct,
            "encodePct": self.encode_pct,
            "source": self.source,
        }


def _clamp_pct(value) -> float:
    try:
        value = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return min(max(value, 0.0), 100.0)


def _scale(pct: float, start: float, end: float) -> float:
    return start + (end - start) * pct / 100.0


def status_floor(status: VideoStatus, encoding_progress: float = 0) -> float:
    """lowest progress consistent with the video status alone"""
    if status == VideoStatus.UPLOADED:
        return WAITING_PROGRESS
    if status == VideoStatus.ENCODING_IPFS:
        return IPFS_PROGRESS
    if status == VideoStatus.ENCODING_PREPARING:
        return QUEUED_PROGRESS
    if status == VideoStatus.ENCODING_PROGRESS:
        return _scale(_clamp_pct(encoding_progress), ENCODE_START, ENCODE_END)
    if status == VideoStatus.ENCODING_COMPLETED:
        return PUBLISHING_PROGRESS
    return 0.0


def _from_job(job: EncodingJob) -> Optional[StatusView]:
    download_pct = _clamp_pct(job.download_pct)
    encode_pct = _clamp_pct(job.pct)

    if job.status == "queued":
        return StatusView("Queued - waiting for encoder to pick up job...", QUEUED_PROGRESS, "queued", source="job")

    if job.status == "running":
        # download and transcode are reported separately so a fresh 0%
        # encode after a finished download doesn't read as a regression
        if download_pct < 100:
            return StatusView(
                f"Downloading from IPFS: {download_pct:.0f}%",
                _scale(download_pct, DOWNLOAD_START, DOWNLOAD_END),
                "downloading",
                download_pct=download_pct,
                encode_pct=encode_pct,
                source="job",
            )
        label = f"Encoding: {encode_pct:.1f}%" if encode_pct > 0 else "Encoder processing..."
        return StatusView(
            label,
            _scale(encode_pct, ENCODE_START, ENCODE_END),
            "encoding",
            download_pct=download_pct,
            encode_pct=encode_pct,
            source="job",
        )

    if job.status in JOB_DONE_STATUSES:
        return StatusView(
            "Encoding complete! Publishing...",
            PUBLISHING_PROGRESS,
            "publishing",
            download_pct=100.0,
            encode_pct=100.0,
            source="job",
        )

    return None


def reconcile(video: VideoRecord, job: Optional[EncodingJob] = None) -> StatusView:
    status = VideoStatus(video.status)

    if status in (VideoStatus.PUBLISHED, VideoStatus.PUBLISH_MANUAL):
        label = "Published!" if status == VideoStatus.PUBLISHED else "Encoded - ready for manual publishing"
        return StatusView(label, DONE_PROGRESS, "published", is_complete=True)

    if status in (VideoStatus.FAILED, VideoStatus.ENCODING_FAILED):
        label = "Encoding failed" if status == VideoStatus.ENCODING_FAILED else "Failed"
        return StatusView(label, 0.0, "failed", is_failed=True)

    if job is not None and job.status in JOB_FAILED_STATUSES:
        label = "Job cancelled" if job.status == "cancelled" else "Encoding failed"
        return StatusView(label, 0.0, "failed", is_failed=True, source="job")

    if status == VideoStatus.UPLOADED:
        return StatusView("Uploaded - waiting for encoder...", WAITING_PROGRESS, "waiting")

    floor = status_floor(status, video.encoding_progress)

    view = _from_job(job) if job is not None else None
    if view is not None:
        view.progress = max(view.progress, floor)
        return view

    phase, label = _FALLBACK[status]
    return StatusView(label.format(pct=_clamp_pct(video.encoding_progress)), floor, phase)
