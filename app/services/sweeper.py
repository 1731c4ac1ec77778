"""
Background expiry of pending holds.

``sweep_once`` does one pass; ``ExpirySweeper`` runs it on an interval from
the app lifespan. Several replicas may sweep at once: every write goes
through the pending-state conditional update in ``holds.expire``.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, NamedTuple, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError
from app.db.session import SessionLocal
from app.models.hold import HoldState, SeatHold
from app.models.seat import Seat, SeatStatus
from app.services import holds

logger = logging.getLogger(__name__)


class SweepResult(NamedTuple):
    expired: int = 0
    conflicts: int = 0
    failed: int = 0
    reconciled: int = 0


def _due_hold_ids(db: Session, now: datetime, batch_size: int, skip: set):
    query = db.query(SeatHold.id).filter(
        SeatHold.state == HoldState.PENDING,
        SeatHold.expires_at <= now,
    )
    if skip:
        query = query.filter(SeatHold.id.notin_(list(skip)))
    ids = [row.id for row in query.order_by(SeatHold.expires_at).limit(batch_size).all()]
    # End the read transaction before the per-hold writes
    db.rollback()
    return ids


def reconcile_orphaned_seats(db: Session, now: datetime) -> int:
    """
    Free seats left ``held`` without a live pending hold behind them.

    Seats held more recently than the grace period are skipped: the reserve
    that holds them may not have committed its hold row yet.
    """
    cutoff = now - timedelta(seconds=settings.SWEEPER_RECONCILE_GRACE_SECONDS)
    pending = select(SeatHold.id).where(SeatHold.state == HoldState.PENDING)
    orphaned = (
        Seat.status == SeatStatus.HELD,
        Seat.deleted_at.is_(None),
        or_(Seat.held_at.is_(None), Seat.held_at < cutoff),
        or_(Seat.hold_id.is_(None), Seat.hold_id.notin_(pending)),
    )

    seat_ids = [row.id for row in db.query(Seat.id).filter(*orphaned).all()]
    if not seat_ids:
        db.rollback()
        return 0

    result = db.execute(
        update(Seat)
        .where(Seat.id.in_(seat_ids), *orphaned)
        .values(status=SeatStatus.AVAILABLE, holder_id=None, hold_id=None, held_at=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning("Reconciled %d orphaned held seats: %s", result.rowcount, seat_ids)
    return result.rowcount


def sweep_once(db: Session, now: Optional[datetime] = None, batch_size: Optional[int] = None) -> SweepResult:
    """Expire every pending hold due at ``now``, then reconcile orphaned seats."""
    now = now or datetime.now(timezone.utc)
    batch_size = batch_size or settings.SWEEPER_BATCH_SIZE
    expired = conflicts = failed = 0
    attempted = set()

    while True:
        due = _due_hold_ids(db, now, batch_size, attempted)
        if not due:
            break
        for hold_id in due:
            attempted.add(hold_id)
            try:
                holds.expire(db, hold_id, now=now)
                expired += 1
            except (ConflictError, NotFoundError):
                # Confirmed or released by someone else since the scan
                conflicts += 1
            except SQLAlchemyError:
                db.rollback()
                failed += 1
                logger.exception("Failed to expire hold %s", hold_id)
        if len(due) < batch_size:
            break

    reconciled = reconcile_orphaned_seats(db, now)
    return SweepResult(expired, conflicts, failed, reconciled)


class ExpirySweeper:
    """Runs ``sweep_once`` every ``interval_seconds`` until stopped."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        interval_seconds: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.SWEEPER_INTERVAL_SECONDS
        self.batch_size = batch_size or settings.SWEEPER_BATCH_SIZE
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[SweepResult] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Expiry sweeper started (every %ss).", self.interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Expiry sweeper stopped.")

    def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        db = self.session_factory()
        try:
            return sweep_once(db, now=now, batch_size=self.batch_size)
        finally:
            db.close()

    async def _run(self) -> None:
        while self._running:
            try:
                result = await asyncio.to_thread(self.run_once)
                self.last_result = result
                if result.expired or result.reconciled or result.failed:
                    logger.info(
                        "Sweep: %d expired, %d conflicts, %d failed, %d seats reconciled",
                        result.expired, result.conflicts, result.failed, result.reconciled,
                    )
            except Exception:
                logger.exception("Error during hold expiry sweep.")
            await asyncio.sleep(self.interval_seconds)
