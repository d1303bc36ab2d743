"""Remote match lifecycle.

The server is the single writer for a remote match: it checks turn
ownership, recomputes every visit with the countdown rules and moves the
match through ``pending -> ready -> lobby -> in_progress -> completed``
(or ``cancelled``/``expired``). Each transition is committed, then pushed
to the players as ``match_update``.
"""
import json
import time
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from dartfreak import db
from dartfreak.errors import (
    AlreadyHasActiveMatch,
    InvalidGameSetup,
    InvalidStatus,
    InvalidThrowInput,
    MatchCancelled,
    MatchExpired,
    MatchNotFound,
    NotAuthorized,
    StaleTurn,
    TurnNotOwned,
    UserNotFound,
)
from dartfreak.models import (
    ACTIVE_MATCH_STATUSES,
    Friendship,
    MatchVisit,
    RemoteMatch,
    RemoteMatchLock,
    User,
)
from dartfreak.services.games.engine import MATCH_FORMATS
from dartfreak.services.games.rules import GameType, score_countdown_visit
from dartfreak.services.games.throws import Throw
from dartfreak.services.games.turn import DARTS_PER_TURN
from dartfreak.socketio_events import emit_match_update


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def _get_match(match_id) -> RemoteMatch:
    match = db.session.get(RemoteMatch, match_id)
    if match is None:
        raise MatchNotFound()
    return match


def _get_participant_match(user, match_id) -> RemoteMatch:
    match = _get_match(match_id)
    if not match.is_participant(user.id):
        raise NotAuthorized()
    return match


def _raise_if_terminal(match: RemoteMatch) -> None:
    if match.status == 'expired':
        raise MatchExpired()
    if match.status == 'cancelled':
        raise MatchCancelled()
    if match.status == 'completed':
        raise InvalidStatus('Match is already completed')


def _is_overdue(match: RemoteMatch, now: Optional[float] = None) -> bool:
    deadline = match.deadline
    now = time.time() if now is None else now
    return deadline is not None and now >= deadline


def _clear_locks(match: RemoteMatch) -> None:
    RemoteMatchLock.query.filter_by(match_id=match.id).delete()


def _finish(match: RemoteMatch, status: str, reason: str, ended_by=None) -> None:
    match.status = status
    match.ended_reason = reason
    match.ended_by = ended_by
    match.ended_at = time.time()
    match.current_player_id = None
    _clear_locks(match)


def _commit_and_broadcast(match: RemoteMatch) -> RemoteMatch:
    try:
        db.session.add(match)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    emit_match_update(match)
    return match


def _clean_stale_locks(user_ids: Iterable[int]) -> None:
    """Drop locks whose match is no longer active or has run out of time."""
    now = time.time()
    for lock in RemoteMatchLock.query.filter(RemoteMatchLock.user_id.in_(list(user_ids))).all():
        match = db.session.get(RemoteMatch, lock.match_id)
        if match is None or not match.is_active:
            db.session.delete(lock)
        elif _is_overdue(match, now):
            _finish(match, 'expired', 'expired')
            _log(f"[expire] match={match.id} stale lock cleanup")
    db.session.flush()


def _has_lock(user_id) -> bool:
    return db.session.get(RemoteMatchLock, user_id) is not None


def _is_blocked(a_id, b_id) -> bool:
    return Friendship.query.filter(
        Friendship.status == 'blocked',
        or_(
            (Friendship.requester_id == a_id) & (Friendship.addressee_id == b_id),
            (Friendship.requester_id == b_id) & (Friendship.addressee_id == a_id),
        ),
    ).first() is not None


def _schedule_expiry(match: RemoteMatch) -> None:
    from dartfreak.services.games.scheduler import schedule_match_expiry
    schedule_match_expiry(current_app._get_current_object(), match.id)
    # an inline timer (tests) commits through its own session
    db.session.refresh(match)


# ---- lifecycle ----

def create_challenge(challenger, receiver_id, game_type='501', match_format=1) -> RemoteMatch:
    kind = GameType.parse(game_type)
    if not kind.is_countdown:
        raise InvalidGameSetup('Remote matches support 301 and 501 only')
    try:
        match_format = int(match_format)
    except (TypeError, ValueError):
        raise InvalidGameSetup('match_format must be a number')
    if match_format not in MATCH_FORMATS:
        raise InvalidGameSetup(f'match_format must be one of {MATCH_FORMATS}')

    try:
        receiver_id = int(receiver_id)
    except (TypeError, ValueError):
        raise UserNotFound()
    if receiver_id == challenger.id:
        raise InvalidGameSetup('You cannot challenge yourself')
    receiver = db.session.get(User, receiver_id)
    if receiver is None:
        raise UserNotFound()
    if _is_blocked(challenger.id, receiver_id):
        raise NotAuthorized('You cannot challenge this user')

    _clean_stale_locks([challenger.id])
    if _has_lock(challenger.id):
        db.session.commit()
        raise AlreadyHasActiveMatch()

    ttl = int(current_app.config.get('CHALLENGE_EXPIRY_SEC', 86400))
    match = RemoteMatch(
        game_type=kind.value,
        match_format=match_format,
        challenger_id=challenger.id,
        receiver_id=receiver_id,
        status='pending',
        challenge_expires_at=time.time() + ttl,
    )
    db.session.add(match)
    _commit_and_broadcast(match)
    _log(f"[challenge] match={match.id} {challenger.id} -> {receiver_id} game={match.game_type} format={match_format}")
    _schedule_expiry(match)
    return match


def accept_challenge(user, match_id) -> RemoteMatch:
    match = _get_match(match_id)
    if match.receiver_id != user.id:
        raise NotAuthorized('Only the receiver can accept this challenge')
    if match.status != 'pending':
        _raise_if_terminal(match)
        raise InvalidStatus(f'Cannot accept a match in status {match.status}')
    if _is_overdue(match):
        _finish(match, 'expired', 'expired')
        _commit_and_broadcast(match)
        raise MatchExpired()

    _clean_stale_locks([match.challenger_id, match.receiver_id])
    if _has_lock(user.id):
        db.session.commit()
        raise AlreadyHasActiveMatch()
    if _has_lock(match.challenger_id):
        db.session.commit()
        raise AlreadyHasActiveMatch('Challenger is already in another match')

    window = int(current_app.config.get('JOIN_WINDOW_SEC', 300))
    match.status = 'ready'
    match.join_window_expires_at = time.time() + window
    for uid in (match.challenger_id, match.receiver_id):
        db.session.add(RemoteMatchLock(user_id=uid, match_id=match.id, lock_status='ready'))
    try:
        _commit_and_broadcast(match)
    except IntegrityError:
        # the other player took a lock in the meantime
        raise AlreadyHasActiveMatch()
    _log(f"[accept] match={match.id} by={user.id} join_window={window}s")
    _schedule_expiry(match)
    return match


def join_match(user, match_id) -> RemoteMatch:
    match = _get_participant_match(user, match_id)
    if match.status == 'in_progress':
        return match
    if match.status not in ('ready', 'lobby'):
        _raise_if_terminal(match)
        raise InvalidStatus(f'Cannot join a match in status {match.status}')
    if _is_overdue(match):
        _finish(match, 'expired', 'expired')
        _commit_and_broadcast(match)
        raise MatchExpired()

    if user.id == match.challenger_id:
        match.challenger_joined = True
    else:
        match.receiver_joined = True

    if match.challenger_joined and match.receiver_joined:
        start = match.starting_score
        match.status = 'in_progress'
        match.current_player_id = match.challenger_id
        match.current_leg = 1
        match.set_scores({match.challenger_id: start, match.receiver_id: start})
        match.set_legs_won({match.challenger_id: 0, match.receiver_id: 0})
        RemoteMatchLock.query.filter_by(match_id=match.id).update({'lock_status': 'in_progress'})
        _log(f"[start] match={match.id} first={match.challenger_id}")
    else:
        match.status = 'lobby'
        _log(f"[lobby] match={match.id} joined={user.id}")
    return _commit_and_broadcast(match)


def _parse_darts(darts) -> List[Throw]:
    if not isinstance(darts, list) or not 1 <= len(darts) <= DARTS_PER_TURN:
        raise InvalidThrowInput(f'A visit has 1 to {DARTS_PER_TURN} darts')
    return [d if isinstance(d, Throw) else Throw.from_dict(d) for d in darts]


def submit_visit(user, match_id, visit_id, darts, score_before=None) -> RemoteMatch:
    """Apply one visit for the player holding the turn.

    Resubmitting a ``visit_id`` that was already stored returns the match
    unchanged.
    """
    if not visit_id or not isinstance(visit_id, str) or len(visit_id) > 64:
        raise InvalidThrowInput('visit_id is required')
    match = _get_participant_match(user, match_id)

    existing = MatchVisit.query.filter_by(match_id=match.id, visit_id=visit_id).first()
    if existing is not None:
        if existing.player_id != user.id:
            raise NotAuthorized('Visit belongs to another player')
        _log(f"[visit-dup] match={match.id} visit={visit_id}")
        return match

    if match.status != 'in_progress':
        _raise_if_terminal(match)
        raise InvalidStatus(f'Cannot submit a visit while the match is {match.status}')
    if match.current_player_id != user.id:
        raise TurnNotOwned()

    throws = _parse_darts(darts)
    scores = match.get_scores()
    before = scores.get(user.id, match.starting_score)
    if score_before is not None:
        try:
            score_before = int(score_before)
        except (TypeError, ValueError):
            raise InvalidThrowInput('score_before must be a number')
        if score_before != before:
            raise StaleTurn(score=before)

    after, is_bust, is_finish = score_countdown_visit(before, throws)
    turn_index = match.visits.count()
    visit = MatchVisit(
        match_id=match.id,
        visit_id=visit_id,
        player_id=user.id,
        leg=match.current_leg,
        turn_index=turn_index,
        darts=json.dumps([d.to_dict() for d in throws]),
        score_before=before,
        score_after=after,
        is_bust=is_bust,
        is_finish=is_finish,
    )
    db.session.add(visit)
    payload = visit.to_dict()
    payload['timestamp'] = time.time()
    payload['total'] = sum(d.total_value for d in throws)
    match.last_visit_payload = json.dumps(payload)

    scores[user.id] = after
    opponent = match.opponent_of(user.id)
    if is_finish:
        legs = match.get_legs_won()
        legs[user.id] = legs.get(user.id, 0) + 1
        match.set_legs_won(legs)
        if legs[user.id] >= match.match_format // 2 + 1:
            match.winner_id = user.id
            match.set_scores(scores)
            _finish(match, 'completed', 'completed', ended_by=user.id)
            _record_result(user.id, opponent)
            _log(f"[complete] match={match.id} winner={user.id}")
        else:
            match.current_leg += 1
            start = match.starting_score
            scores = {match.challenger_id: start, match.receiver_id: start}
            match.set_scores(scores)
            # the throw alternates each leg
            match.current_player_id = match.challenger_id if match.current_leg % 2 == 1 else match.receiver_id
            _log(f"[leg] match={match.id} leg_won_by={user.id} next_leg={match.current_leg}")
    else:
        match.set_scores(scores)
        match.current_player_id = opponent

    try:
        _commit_and_broadcast(match)
    except IntegrityError:
        # a concurrent retry stored the same visit first
        db.session.rollback()
        return _get_match(match_id)
    _log(f"[visit] match={match.id} player={user.id} {before}->{after} bust={is_bust}")
    return match


def _record_result(winner_id, loser_id) -> None:
    winner = db.session.get(User, winner_id)
    loser = db.session.get(User, loser_id)
    if winner is not None:
        winner.total_wins = (winner.total_wins or 0) + 1
    if loser is not None:
        loser.total_losses = (loser.total_losses or 0) + 1


def cancel_match(user, match_id) -> RemoteMatch:
    match = _get_participant_match(user, match_id)
    if match.status == 'cancelled':
        return match
    if match.status not in ('pending', 'ready'):
        raise InvalidStatus(f'Cannot cancel a match in status {match.status}')
    _finish(match, 'cancelled', 'cancelled', ended_by=user.id)
    _log(f"[cancel] match={match.id} by={user.id}")
    return _commit_and_broadcast(match)


def abort_match(user, match_id) -> RemoteMatch:
    match = _get_participant_match(user, match_id)
    if not match.is_active:
        return match
    if match.status == 'pending':
        raise InvalidStatus('Cancel a pending challenge instead of aborting it')
    _finish(match, 'cancelled', 'aborted', ended_by=user.id)
    _log(f"[abort] match={match.id} by={user.id}")
    return _commit_and_broadcast(match)


def expire_match(user, match_id) -> RemoteMatch:
    """Expire a match whose deadline has passed. Idempotent."""
    match = _get_participant_match(user, match_id)
    if not match.is_active:
        return match
    if not _is_overdue(match):
        raise InvalidStatus('Match has not expired yet')
    _finish(match, 'expired', 'expired', ended_by=user.id)
    _log(f"[expire] match={match.id} by={user.id}")
    return _commit_and_broadcast(match)


def expire_if_overdue(match_id, now: Optional[float] = None) -> Optional[RemoteMatch]:
    match = db.session.get(RemoteMatch, match_id)
    if match is None or not match.is_active or not _is_overdue(match, now):
        return None
    _finish(match, 'expired', 'expired')
    _log(f"[expire] match={match.id} deadline passed")
    return _commit_and_broadcast(match)


def expire_overdue_matches(now: Optional[float] = None) -> List[int]:
    now = time.time() if now is None else now
    candidates = RemoteMatch.query.filter(
        RemoteMatch.status.in_(('pending', 'ready', 'lobby'))
    ).all()
    expired = []
    for match in candidates:
        if expire_if_overdue(match.id, now) is not None:
            expired.append(match.id)
    if expired:
        _log(f"[sweep] expired={expired}")
    return expired


# ---- queries ----

def get_match(user, match_id) -> RemoteMatch:
    match = _get_participant_match(user, match_id)
    return expire_if_overdue(match.id) or match


def list_matches(user, statuses: Optional[Iterable[str]] = None) -> List[RemoteMatch]:
    query = RemoteMatch.query.filter(
        or_(RemoteMatch.challenger_id == user.id, RemoteMatch.receiver_id == user.id)
    )
    for match in query.filter(RemoteMatch.status.in_(ACTIVE_MATCH_STATUSES)).all():
        expire_if_overdue(match.id)
    if statuses:
        query = query.filter(RemoteMatch.status.in_(list(statuses)))
    return query.order_by(RemoteMatch.created_at.desc(), RemoteMatch.id.desc()).all()


def list_visits(user, match_id) -> List[MatchVisit]:
    match = _get_participant_match(user, match_id)
    return match.visits.order_by(MatchVisit.turn_index).all()
