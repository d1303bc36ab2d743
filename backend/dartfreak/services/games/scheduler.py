import time
from typing import Set, Tuple

from dartfreak import db, socketio
from dartfreak.models import RemoteMatch


_scheduled_expiry_keys: Set[Tuple[int, str]] = set()
_sweeper_started = False


def schedule_match_expiry(app, match_id: int) -> None:
    """Schedule the expiry of a match that is waiting on a deadline.

    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (match_id, status)
    - On fire, expires the match only if it is still in the same status
      and its deadline has passed
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        match = db.session.get(RemoteMatch, match_id)
        if not match or not match.is_active or match.deadline is None:
            return

        status = match.status
        key = (match.id, status)
        deadline = float(match.deadline)

        if key in _scheduled_expiry_keys:
            try:
                app.logger.info(f"[timer-skip] match={match.id} status={status} already scheduled")
            except Exception:
                pass
            return

        _scheduled_expiry_keys.add(key)
        delay = max(0.0, deadline - time.time())

        try:
            app.logger.info(f"[timer-set] match={match.id} status={status} delay={delay:.0f}s deadline={deadline}")
        except Exception:
            pass

    def _worker(mid: int, expected_status: str, delay: float):
        # heartbeat sleep loop if enabled
        try:
            hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        except Exception:
            hb = 0
        if hb and hb > 0:
            slept = 0.0
            while slept < delay:
                step = min(hb, delay - slept)
                time.sleep(step)
                slept += step
                try:
                    app.logger.info(f"[timer-heartbeat] match={mid} status={expected_status} remaining={max(0, delay - slept):.0f}s")
                except Exception:
                    pass
        elif delay > 0:
            time.sleep(delay)
        with app.app_context():
            _scheduled_expiry_keys.discard((mid, expected_status))
            m = db.session.get(RemoteMatch, mid)
            if not m:
                return
            try:
                app.logger.info(f"[timer-fire] match={mid} expected_status={expected_status} actual_status={m.status}")
            except Exception:
                pass

            if m.status != expected_status:
                try:
                    app.logger.info(f"[timer-abort] match={mid} status changed")
                except Exception:
                    pass
                return

            from dartfreak.services.matches import expire_if_overdue
            expire_if_overdue(mid)

    if app.config.get('TESTING'):
        _worker(match_id, status, delay)
    else:
        socketio.start_background_task(_worker, match_id, status, delay)


def start_expiry_sweeper(app) -> None:
    """Periodically expire overdue matches, covering timers lost on restart."""
    global _sweeper_started
    if _sweeper_started:
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    try:
        interval = int(app.config.get('EXPIRY_SWEEP_SEC', 60))
    except Exception:
        interval = 60
    if interval <= 0:
        return
    _sweeper_started = True

    def _sweep_loop():
        from dartfreak.services.matches import expire_overdue_matches
        while True:
            socketio.sleep(interval)
            with app.app_context():
                try:
                    expire_overdue_matches()
                except Exception as exc:
                    db.session.rollback()
                    app.logger.warning(f"[sweep-failed] {exc}")

    socketio.start_background_task(_sweep_loop)
    try:
        app.logger.info(f"[sweep-set] every {interval}s")
    except Exception:
        pass
