import pytest

from upload_service.core.errors import ValidationError
from upload_service.models import VideoStatus
from upload_service.models.videos import can_transition
from upload_service.services.job_tracker import (
    advance_video_status,
    apply_job_report,
    create_encoding_job,
    get_job_for_video,
    mark_published,
)


@pytest.mark.parametrize("current,new,allowed", [
    (VideoStatus.UPLOADED, VideoStatus.ENCODING_IPFS, True),
    (VideoStatus.UPLOADED, VideoStatus.ENCODING_PROGRESS, True),
    (VideoStatus.ENCODING_PROGRESS, VideoStatus.ENCODING_PREPARING, False),
    (VideoStatus.ENCODING_PROGRESS, VideoStatus.ENCODING_PROGRESS, False),
    (VideoStatus.ENCODING_COMPLETED, VideoStatus.PUBLISHED, True),
    (VideoStatus.ENCODING_PREPARING, VideoStatus.ENCODING_FAILED, True),
    (VideoStatus.PUBLISHED, VideoStatus.ENCODING_FAILED, False),
    (VideoStatus.PUBLISHED, VideoStatus.PUBLISH_MANUAL, False),
    (VideoStatus.FAILED, VideoStatus.ENCODING_IPFS, False),
])
def test_can_transition(current, new, allowed):
    assert can_transition(current, new) is allowed


def test_stale_status_write_is_dropped(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_PROGRESS, encoding_progress=60)
    assert advance_video_status(session, video, VideoStatus.ENCODING_PREPARING) is False
    assert video.status == VideoStatus.ENCODING_PROGRESS.value


def test_encoding_progress_never_decreases(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_PROGRESS, encoding_progress=60)
    advance_video_status(session, video, VideoStatus.ENCODING_PROGRESS, encoding_progress=40)
    assert video.encoding_progress == 60
    advance_video_status(session, video, VideoStatus.ENCODING_PROGRESS, encoding_progress=75)
    assert video.encoding_progress == 75


def test_job_lifecycle_drives_video(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_IPFS)
    job = create_encoding_job(session, video, input_cid="QmInput")
    assert video.job_id == str(job.id)
    assert get_job_for_video(session, video).id == job.id

    apply_job_report(session, job, "running", pct=0, download_pct=50)
    session.refresh(video)
    assert video.status == VideoStatus.ENCODING_PREPARING.value

    apply_job_report(session, job, "running", pct=42.5, download_pct=100)
    session.refresh(video)
    assert video.status == VideoStatus.ENCODING_PROGRESS.value
    assert video.encoding_progress == 42

    apply_job_report(session, job, "complete", pct=100, download_pct=100)
    session.refresh(video)
    assert video.status == VideoStatus.ENCODING_COMPLETED.value

    assert mark_published(session, video) is True
    assert video.status == VideoStatus.PUBLISHED.value
    assert video.encoding_progress == 100


def test_late_report_after_terminal_job_is_ignored(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_IPFS)
    job = create_encoding_job(session, video, input_cid="QmInput")
    apply_job_report(session, job, "complete", pct=100, download_pct=100)

    apply_job_report(session, job, "running", pct=10, download_pct=100)
    assert job.status == "complete"
    session.refresh(video)
    assert video.status == VideoStatus.ENCODING_COMPLETED.value


def test_cancelled_job_fails_video(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_IPFS)
    job = create_encoding_job(session, video, input_cid="QmInput")
    apply_job_report(session, job, "cancelled", error="operator cancelled")
    session.refresh(video)
    assert video.status == VideoStatus.ENCODING_FAILED.value
    assert job.error_message == "operator cancelled"


def test_unknown_job_status_rejected(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_IPFS)
    job = create_encoding_job(session, video, input_cid="QmInput")
    with pytest.raises(ValidationError):
        apply_job_report(session, job, "exploded")


def test_publish_is_absorbing(session, make_video):
    video = make_video(status=VideoStatus.ENCODING_COMPLETED)
    assert mark_published(session, video, manual=True) is True
    assert mark_published(session, video) is False
    assert video.status == VideoStatus.PUBLISH_MANUAL.value


def test_no_job_yet(session, make_video):
    video = make_video()
    assert get_job_for_video(session, video) is None
