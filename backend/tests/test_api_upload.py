from conftest import PIPELINE_TOKEN
from upload_service.services.job_tracker import create_encoding_job


def post_finish(upload_id, tus_id="tus-1", size=2048):
    """tusd v2 hook body for a completed transfer"""
    return {
        "Type": "post-finish",
        "Event": {
            "Upload": {
                "ID": tus_id,
                "Size": size,
                "MetaData": {"upload_id": upload_id, "filename": "clip.mp4"},
                "Storage": {"Type": "filestore", "Path": f"/data/tus/{tus_id}"},
            }
        },
    }


def init_upload(client, headers, filename="clip.mp4"):
    response = client.post("/api/upload/init", json={"filename": filename, "size": 2048}, headers=headers)
    assert response.status_code == 200
    return response.json()["data"]["upload_id"]


def test_upload_first_flow(client, user_headers, dispatched):
    """init -> transport completes -> finalize -> poll says waiting for encoder"""
    response = client.post("/api/upload/init", json={"filename": "clip.mp4", "size": 2048}, headers=user_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tus_endpoint"] == "/files"
    upload_id = data["upload_id"]

    response = client.post("/api/upload/tus-callback", json=post_finish(upload_id))
    assert response.status_code == 200
    assert response.json()["data"]["handled"] is True

    response = client.post(
        "/api/upload/finalize",
        json={"upload_id": upload_id, "title": "T", "description": "D", "tags": ["a", "b"]},
        headers=user_headers,
    )
    assert response.status_code == 200
    video_id = response.json()["data"]["video_id"]
    assert len(dispatched) == 1

    response = client.get(f"/api/upload/video/{video_id}/status", headers=user_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["video"]["status"] == "uploaded"
    assert data["video"]["tags"] == ["a", "b"]
    assert data["job"] is None
    assert "waiting for encoder" in data["state"]["label"]
    assert data["poll_interval_ms"] == 5000


def test_finalize_before_transport_completes(client, user_headers, dispatched):
    upload_id = init_upload(client, user_headers)
    response = client.post(
        "/api/upload/finalize",
        json={"upload_id": upload_id, "title": "T"},
        headers=user_headers,
    )
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["retryable"] is True
    assert body["error"] == "TUS upload not completed yet"
    assert dispatched == []


def test_duplicate_finalize(client, user_headers):
    upload_id = init_upload(client, user_headers)
    client.post("/api/upload/tus-callback", json=post_finish(upload_id))
    payload = {"upload_id": upload_id, "title": "T"}

    assert client.post("/api/upload/finalize", json=payload, headers=user_headers).status_code == 200
    response = client.post("/api/upload/finalize", json=payload, headers=user_headers)
    assert response.status_code == 409
    assert response.json()["retryable"] is False


def test_finalize_with_community_object(client, user_headers):
    upload_id = init_upload(client, user_headers)
    client.post("/api/upload/tus-callback", json=post_finish(upload_id))
    response = client.post(
        "/api/upload/finalize",
        json={
            "upload_id": upload_id,
            "title": "T",
            "community": {"name": "hive-181335", "title": "Threespeak"},
            "declineRewards": True,
        },
        headers=user_headers,
    )
    assert response.status_code == 200
    video_id = response.json()["data"]["video_id"]
    video = client.get(f"/api/upload/video/{video_id}/status", headers=user_headers).json()["data"]["video"]
    assert video["community"] == "hive-181335"
    assert video["declineRewards"] is True


def test_finalize_rejects_malformed_community(client, user_headers):
    upload_id = init_upload(client, user_headers)
    client.post("/api/upload/tus-callback", json=post_finish(upload_id))
    response = client.post(
        "/api/upload/finalize",
        json={"upload_id": upload_id, "title": "T", "community": {"title": "no name"}},
        headers=user_headers,
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_missing_upload_id_is_bad_request(client, user_headers):
    response = client.post("/api/upload/finalize", json={"title": "T"}, headers=user_headers)
    assert response.status_code == 400
    assert "upload_id" in response.json()["error"]


def test_upload_routes_require_username(client):
    response = client.post("/api/upload/init", json={"filename": "clip.mp4"})
    assert response.status_code == 401
    response = client.get("/api/upload/in-progress", headers={"X-Hive-Username": "NO SPACES!"})
    assert response.status_code == 401


def test_in_progress_empty(client, user_headers):
    response = client.get("/api/upload/in-progress", headers=user_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["videos"] == []
    assert data["count"] == 0
    assert all(value == 0 for value in data["summary"].values())


def test_other_users_video_is_not_found(client, user_headers, make_video):
    video = make_video(owner="bob")
    response = client.get(f"/api/upload/video/{video.id}/status", headers=user_headers)
    assert response.status_code == 404
    response = client.get("/api/upload/video/not-a-uuid/status", headers=user_headers)
    assert response.status_code == 404


def test_session_status_and_abort(client, user_headers):
    upload_id = init_upload(client, user_headers)

    response = client.get(f"/api/upload/session/{upload_id}", headers=user_headers)
    assert response.json()["data"]["tus_completed"] is False

    response = client.post(
        "/api/upload/tus-callback",
        json={"Upload": {"ID": "tus-1", "MetaData": {"upload_id": upload_id}}},
        headers={"Hook-Name": "post-terminate"},
    )
    assert response.status_code == 200
    response = client.get(f"/api/upload/session/{upload_id}", headers=user_headers)
    assert response.json()["data"]["abandoned"] is True


def test_pre_create_rejects_unknown_session(client):
    response = client.post(
        "/api/upload/tus-callback",
        json={"Type": "pre-create", "Event": {"Upload": {"MetaData": {"upload_id": "nope"}}}},
    )
    assert response.status_code == 404


def test_unhandled_hook_is_ignored(client):
    response = client.post("/api/upload/tus-callback", json={"Type": "post-receive", "Event": {}})
    assert response.status_code == 200
    assert response.json()["data"]["handled"] is False


def test_prepare_flow(client, user_headers, dispatched):
    response = client.post(
        "/api/upload/prepare",
        json={"filename": "legacy.mp4", "title": "Legacy", "tags": "one,two"},
        headers=user_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert dispatched == []

    client.post("/api/upload/tus-callback", json=post_finish(data["upload_id"]))
    assert [str(video_id) for video_id, _ in dispatched] == [data["video_id"]]


def test_thumbnail_upload(client, user_headers, make_video, ipfs):
    video = make_video()
    response = client.post(
        f"/api/upload/thumbnail/{video.id}",
        files={"thumbnail": ("thumb.png", b"\x89PNG\r\n\x1a\nfake", "image/png")},
        headers=user_headers,
    )
    assert response.status_code == 200
    cid = ipfs.added[0][1]
    assert response.json()["data"]["thumbnail_url"] == f"ipfs://{cid}"


def test_thumbnail_must_be_image(client, user_headers, make_video):
    video = make_video()
    response = client.post(
        f"/api/upload/thumbnail/{video.id}",
        files={"thumbnail": ("notes.txt", b"hello", "text/plain")},
        headers=user_headers,
    )
    assert response.status_code == 400


def test_encoder_progress_reaches_poll(client, user_headers, make_video, session):
    """encoding_ipfs video with a job 45% through its download"""
    video = make_video(status="encoding_ipfs")
    job = create_encoding_job(session, video, input_cid="QmInput")
    auth = {"Authorization": f"Bearer {PIPELINE_TOKEN}"}

    response = client.post(
        f"/api/pipeline/jobs/{job.id}",
        json={"status": "running", "progress": {"pct": 0, "download_pct": 45}},
        headers=auth,
    )
    assert response.status_code == 200

    state = client.get(f"/api/upload/video/{video.id}/status", headers=user_headers).json()["data"]["state"]
    assert state["phase"] == "downloading"
    assert state["downloadPct"] == 45
    assert state["progress"] > 10
