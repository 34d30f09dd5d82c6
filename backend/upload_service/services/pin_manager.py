import logging
import time
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from upload_service.core.config import Settings
from upload_service.core.errors import GCFailedError, UpstreamUnavailableError, ValidationError
from upload_service.models import PinObservation
from upload_service.services.ipfs import IpfsApiError, IpfsClient
from upload_service.services.log_publisher import LogPublisher

logger = logging.getLogger(__name__)

TOO_YOUNG = "too_young"
ELIGIBLE = "eligible"
FORCE_ELIGIBLE = "force_eligible"


def pin_eligibility(age_hours: float, min_age_hours: float, force: bool = False) -> str:
    """unpin eligibility; only the clock moves a pin from too_young to eligible"""
    if force:
        return FORCE_ELIGIBLE
    if age_hours >= min_age_hours:
        return ELIGIBLE
    return TOO_YOUNG


def format_bytes(num_bytes: int, decimals: int = 2) -> str:
    """format a byte count for humans, e.g. 1536 -> '1.5 KB'"""
    if num_bytes <= 0:
        return "0 Bytes"
    sizes = ["Bytes", "KB", "MB", "GB", "TB", "PB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(sizes) - 1:
        value /= 1024
        i += 1
    value = round(value, max(decimals, 0))
    return f"{value:g} {sizes[i]}"


class PinManager:
    """
    pin inventory and space reclamation for the ipfs repo.

    ipfs does not record when something was pinned, so the first time a cid
    shows up in a listing is persisted and used as its pin time. the age gate
    is measured from that observation, not from the real pin.
    """

    def __init__(
        self,
        settings: Settings,
        ipfs: IpfsClient,
        session: Session,
        publisher: Optional[LogPublisher] = None,
    ):
        self.ipfs = ipfs
        self.session = session
        self.publisher = publisher
        self.min_age_hours = settings.PIN_MIN_AGE_HOURS

    def _publish(self, level, message, metadata=None):
        if self.publisher:
            self.publisher.publish('storage', level, message, metadata)

    def _object_size(self, cid: str) -> int:
        """cumulative size, 0 when the stat lookup fails"""
        try:
            return int(self.ipfs.object_stat(cid).get("CumulativeSize") or 0)
        except (IpfsApiError, ValueError, TypeError) as e:
            logger.debug(f"no object stat for {cid}: {e}")
            return 0

    def _observe(self, cids: Iterable[str], now: datetime, prune: bool = False) -> Dict[str, datetime]:
        """
        first-seen time per cid, recording new observations.
        with prune=True rows for cids not in the set are dropped so a later
        re-pin starts a fresh clock.
        """
        cids = set(cids)
        try:
            return self._record_observations(cids, now, prune)
        except IntegrityError:
            # a concurrent request recorded the same cid first; keep its time
            self.session.rollback()
            logger.info("pin observation written concurrently, re-reading")
            return self._record_observations(cids, now, prune)

    def _record_observations(self, cids: Set[str], now: datetime, prune: bool) -> Dict[str, datetime]:
        query = select(PinObservation)
        if not prune:
            query = query.where(PinObservation.cid.in_(list(cids)))
        observed = {obs.cid: obs for obs in self.session.exec(query).all()}

        for cid in cids - observed.keys():
            obs = PinObservation(cid=cid, first_seen_at=now)
            self.session.add(obs)
            observed[cid] = obs

        if prune:
            for cid in observed.keys() - cids:
                self.session.delete(observed[cid])

        self.session.commit()
        return {cid: observed[cid].first_seen_at for cid in cids}

    @staticmethod
    def _age_hours(first_seen: datetime, now: datetime) -> float:
        return max((now - first_seen).total_seconds() / 3600.0, 0.0)

    def list_pinned_files(self, now: Optional[datetime] = None) -> List[dict]:
        """every recursive pin with size and approximate pin time; never drops a pin"""
        now = now or datetime.utcnow()
        try:
            pins = self.ipfs.pin_ls()
        except IpfsApiError as e:
            logger.error(f"error listing pinned files: {e}")
            raise UpstreamUnavailableError("Failed to list pinned files") from e

        first_seen = self._observe(pins.keys(), now, prune=True)

        pin_list = []
        for cid, pin_type in pins.items():
            age = self._age_hours(first_seen[cid], now)
            pin_list.append({
                "cid": cid,
                "type": pin_type,
                "size": self._object_size(cid),
                "timestamp": first_seen[cid].isoformat(),
                "ageHours": round(age, 2),
                "eligible": pin_eligibility(age, self.min_age_hours) == ELIGIBLE,
            })
        return pin_list

    def unpin_files(self, cids: List[str], force: bool = False, now: Optional[datetime] = None) -> dict:
        """
        unpin each cid independently. one failure never aborts the batch, and
        every requested cid lands in exactly one of success/failed/skipped.
        """
        if not cids:
            raise ValidationError("Invalid request: cids array is required")

        now = now or datetime.utcnow()
        # collapse duplicates, keep request order
        requested = list(dict.fromkeys(cids))
        results = {"success": [], "failed": [], "skipped": []}

        # never-listed cids get observed now, which makes them too young
        first_seen = {} if force else self._observe(requested, now)

        for cid in requested:
            if not force:
                age = self._age_hours(first_seen[cid], now)
                if pin_eligibility(age, self.min_age_hours) == TOO_YOUNG:
                    logger.info(f"skipping unpin of {cid}: pinned {age:.1f}h ago")
                    results["skipped"].append({
                        "cid": cid,
                        "reason": f"pinned less than {self.min_age_hours}h ago",
                        "ageHours": round(age, 2),
                    })
                    continue

            try:
                self.ipfs.pin_rm(cid)
            except IpfsApiError as e:
                logger.error(f"failed to unpin {cid}: {e}")
                results["failed"].append({"cid": cid, "error": str(e)})
                continue

            results["success"].append(cid)
            logger.info(f"successfully unpinned: {cid}")

        if results["success"]:
            for obs in self.session.exec(
                select(PinObservation).where(PinObservation.cid.in_(results["success"]))
            ).all():
                self.session.delete(obs)
            self.session.commit()

        self._publish(
            'WARNING' if results["failed"] else 'INFO',
            f'unpinned {len(results["success"])} files, {len(results["failed"])} failed, '
            f'{len(results["skipped"])} skipped',
            {"force": force, **results},
        )
        return results

    def list_unpinned_files(self) -> List[dict]:
        """
        the ipfs api has no view of unpinned-but-not-collected objects,
        so there is nothing to enumerate; gc reports what was actually freed
        """
        return []

    def estimate_reclaimable_space(self) -> dict:
        """rough estimate: repo size minus the cumulative size of all pins"""
        try:
            repo_size = self.ipfs.repo_stat()["repoSize"]
            pinned_size = sum(self._object_size(cid) for cid in self.ipfs.pin_ls())
        except IpfsApiError as e:
            logger.error(f"error estimating reclaimable space: {e}")
            return {"estimated": 0, "approximate": True, "note": "Unable to estimate"}

        return {
            "estimated": max(repo_size - pinned_size, 0),
            "approximate": True,
            "note": "Estimate only (shared blocks and metadata skew it); "
                    "run garbage collection to see actual space freed",
        }

    def run_garbage_collection(self) -> dict:
        """
        snapshot repo size, run gc, snapshot again.
        gc can't be cancelled and concurrent runs are not deduplicated.
        """
        logger.info("starting ipfs garbage collection...")
        self._publish('INFO', 'garbage collection started')
        started = time.monotonic()

        try:
            before = self.ipfs.repo_stat()["repoSize"]
            removed = self.ipfs.repo_gc()
            after = self.ipfs.repo_stat()["repoSize"]
        except IpfsApiError as e:
            logger.error(f"error running garbage collection: {e}")
            self._publish('ERROR', f'garbage collection failed: {e}')
            raise GCFailedError(f"Failed to run garbage collection: {e}") from e

        duration_ms = int((time.monotonic() - started) * 1000)
        raw_delta = before - after
        # concurrent writes can make the delta negative; report it, don't fail
        space_freed = max(raw_delta, 0)

        logger.info(f"garbage collection completed in {duration_ms}ms, freed {space_freed} bytes")
        self._publish('SUCCESS', f'garbage collection freed {format_bytes(space_freed)}', {
            "spaceFreed": space_freed,
            "duration": duration_ms,
        })

        return {
            "spaceFreed": space_freed,
            "rawDelta": raw_delta,
            "beforeSize": before,
            "afterSize": after,
            "removedObjects": removed,
            "duration": duration_ms,
            "timestamp": datetime.utcnow().isoformat(),
        }
