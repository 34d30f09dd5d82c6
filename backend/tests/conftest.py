import hashlib
import os
from uuid import uuid4

# must be set before the app (and its engine) is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from upload_service.api.deps import get_dispatcher, get_ipfs_client
from upload_service.core.config import Settings, get_settings
from upload_service.core.db import get_session
from upload_service.main import app
from upload_service.models import VideoRecord, VideoStatus
from upload_service.services.ipfs import IpfsApiError

ADMIN_AUTH = ("admin", "s3cret")
PIPELINE_TOKEN = "pipeline-token"
USER = "alice"


class FakeIpfs:
    """in-memory stand-in for the kubo rpc api"""

    def __init__(self):
        self.pins = {}  # cid -> cumulative size
        self.garbage = 0  # bytes unpinned but not yet collected
        self.overhead = 4096
        self.storage_max = 10 * 1024 ** 3
        self.fail_stat = set()
        self.fail_unpin = set()
        self.down = False
        self.gc_fails = False
        self.gc_runs = 0
        self.added = []

    def pin(self, cid, size):
        self.pins[cid] = size

    def _check(self):
        if self.down:
            raise IpfsApiError("ipfs repo/stat unreachable: connection refused")

    def repo_stat(self):
        self._check()
        return {
            "repoSize": sum(self.pins.values()) + self.garbage + self.overhead,
            "storageMax": self.storage_max,
            "numObjects": len(self.pins),
            "repoPath": "/data/ipfs",
            "version": "fs-repo@15",
        }

    def pin_ls(self):
        self._check()
        return {cid: "recursive" for cid in self.pins}

    def object_stat(self, cid):
        if cid in self.fail_stat or cid not in self.pins:
            raise IpfsApiError(f"ipfs object/stat failed (500): no link named {cid}")
        return {"Hash": cid, "CumulativeSize": self.pins[cid]}

    def pin_rm(self, cid):
        self._check()
        if cid in self.fail_unpin or cid not in self.pins:
            raise IpfsApiError("ipfs pin/rm failed (500): not pinned or pinned indirectly")
        self.garbage += self.pins.pop(cid)

    def repo_gc(self):
        self._check()
        if self.gc_fails:
            raise IpfsApiError("ipfs repo/gc failed (500): could not acquire gc lock")
        self.gc_runs += 1
        removed = 1 if self.garbage else 0
        self.garbage = 0
        return removed

    def add(self, fileobj, filename, pin=True):
        self._check()
        content = fileobj if isinstance(fileobj, bytes) else fileobj.read()
        cid = "Qm" + hashlib.sha256(content).hexdigest()[:44]
        self.added.append((filename, cid))
        if pin:
            self.pins[cid] = len(content)
        return cid

    def version(self):
        self._check()
        return {"Version": "0.29.0"}


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(
        DATABASE_URL="sqlite://",
        REDIS_URL="",
        STORAGE_ADMIN_USERNAME=ADMIN_AUTH[0],
        STORAGE_ADMIN_PASSWORD=ADMIN_AUTH[1],
        PIPELINE_CALLBACK_TOKEN=PIPELINE_TOKEN,
        IPFS_REPO_PATH="/",
    )


# create in-memory test database
@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="ipfs")
def ipfs_fixture():
    return FakeIpfs()


@pytest.fixture(name="dispatched")
def dispatched_fixture():
    """records (video_id, upload_id) handed to the encoder"""
    return []


@pytest.fixture(name="client")
def client_fixture(session, settings, ipfs, dispatched):
    def get_session_override():
        return session

    def dispatch(video_id, upload_id):
        dispatched.append((video_id, upload_id))

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ipfs_client] = lambda: ipfs
    app.dependency_overrides[get_dispatcher] = lambda: dispatch
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="user_headers")
def user_headers_fixture():
    return {"X-Hive-Username": USER}


@pytest.fixture(name="make_video")
def make_video_fixture(session):
    """insert a video record straight into the database"""
    def make_video(owner=USER, status=VideoStatus.UPLOADED, **fields):
        fields.setdefault("title", "test video")
        fields.setdefault("permlink", uuid4().hex[:8])
        video = VideoRecord(owner=owner, status=VideoStatus(status).value, **fields)
        session.add(video)
        session.commit()
        session.refresh(video)
        return video
    return make_video
