"""Saved results of local games.

A finished local game is posted once with its players, winner and the
full turn list. Registered participants get their win/loss counters
updated; guests are stored by name only.
"""
import json
import time
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_

from dartfreak import db
from dartfreak.errors import DartFreakError, InvalidGameSetup, MatchNotFound, NotAuthorized
from dartfreak.models import MatchParticipant, MatchRecord, MatchThrow, User
from dartfreak.services.games.engine import MATCH_FORMATS, TurnEngine
from dartfreak.services.games.rules import GameType
from dartfreak.services.games.throws import Throw

GAME_NAMES = {
    GameType.X301: '301',
    GameType.X501: '501',
    GameType.HALVE_IT: 'Halve-It',
    GameType.SUDDEN_DEATH: 'Sudden Death',
    GameType.KNOCKOUT: 'Knockout',
    GameType.KILLER: 'Killer',
}


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def payload_from_engine(engine: TurnEngine, players: List[Dict[str, Any]], started_at: Optional[float] = None) -> Dict[str, Any]:
    """Build the history payload for a finished engine.

    ``players`` lists ``{'user_id': ..., 'name': ...}`` in the engine's
    player order; engine player ids are matched by position.
    """
    order = {pid: idx for idx, pid in enumerate(engine.players)}
    final = engine.lives if not engine.game_type.is_countdown and engine.lives else engine.player_scores
    return {
        'game_type': engine.game_type.value,
        'match_format': engine.match_format,
        'started_at': started_at,
        'ended_at': time.time(),
        'winner_index': order.get(engine.winner),
        'players': [
            dict(players[idx], final_score=final.get(pid), legs_won=engine.legs_won.get(pid, 0))
            for pid, idx in order.items()
        ],
        'turns': [
            {
                'player_index': order[record.player_id],
                'leg': record.leg,
                'darts': [d.to_dict() for d in record.darts],
                'score_before': record.score_before,
                'score_after': record.score_after,
                'is_bust': record.is_bust,
                'metadata': dict(record.outcome.metadata),
            }
            for record in engine.turn_history
        ],
        'metadata': engine.policy.describe(),
    }


def save_match(user, payload: Dict[str, Any]) -> MatchRecord:
    payload = payload or {}
    kind = GameType.parse(payload.get('game_type'))
    players = payload.get('players') or []
    if not isinstance(players, list) or any(not isinstance(p, dict) for p in players):
        raise InvalidGameSetup('players must be a list of objects')
    if len(players) < 2:
        raise InvalidGameSetup('At least 2 players are required')
    try:
        match_format = int(payload.get('match_format') or 1)
    except (TypeError, ValueError):
        match_format = None
    if match_format not in MATCH_FORMATS:
        raise InvalidGameSetup(f'match_format must be one of {MATCH_FORMATS}')
    winner_index = payload.get('winner_index')
    if winner_index is not None and not (isinstance(winner_index, int) and 0 <= winner_index < len(players)):
        raise InvalidGameSetup('winner_index is out of range')

    user_ids = [p.get('user_id') for p in players if p.get('user_id') is not None]
    if len(set(user_ids)) != len(user_ids):
        raise InvalidGameSetup('A user can only take part once')
    users = {u.id: u for u in User.query.filter(User.id.in_(user_ids)).all()} if user_ids else {}
    missing = [uid for uid in user_ids if uid not in users]
    if missing:
        raise InvalidGameSetup(f'Unknown users: {missing}')
    if any(p.get('user_id') is None and not (p.get('name') or '').strip() for p in players):
        raise InvalidGameSetup('Guest players need a name')

    record = MatchRecord(
        game_type=kind.value,
        game_name=GAME_NAMES[kind],
        match_format=match_format,
        saved_by_id=user.id,
        started_at=payload.get('started_at'),
        ended_at=payload.get('ended_at') or time.time(),
        game_metadata=json.dumps(payload.get('metadata') or {}),
    )
    db.session.add(record)
    for idx, p in enumerate(players):
        name = (p.get('name') or '').strip() or None
        record.participants.append(MatchParticipant(
            user_id=p.get('user_id'),
            guest_name=None if p.get('user_id') is not None else name,
            player_order=idx,
            final_score=p.get('final_score'),
            legs_won=int(p.get('legs_won') or 0),
        ))
    if winner_index is not None:
        winner = players[winner_index]
        record.winner_user_id = winner.get('user_id')
        record.winner_name = users[winner['user_id']].username if winner.get('user_id') else winner.get('name')

    try:
        for turn_index, turn in enumerate(payload.get('turns') or []):
            player_index = turn.get('player_index')
            if not isinstance(player_index, int) or not 0 <= player_index < len(players):
                raise InvalidGameSetup(f'turn {turn_index} has an invalid player_index')
            darts = [Throw.from_dict(d) for d in turn.get('darts') or []]
            db.session.add(MatchThrow(
                record=record,
                player_order=player_index,
                turn_index=turn_index,
                leg=int(turn.get('leg') or 1),
                darts=json.dumps([d.to_dict() for d in darts]),
                score_before=int(turn.get('score_before') or 0),
                score_after=int(turn.get('score_after') or 0),
                is_bust=bool(turn.get('is_bust')),
                game_metadata=json.dumps(turn.get('metadata') or {}),
            ))

        if winner_index is not None:
            for idx, p in enumerate(players):
                registered = users.get(p.get('user_id'))
                if registered is None:
                    continue
                if idx == winner_index:
                    registered.total_wins = (registered.total_wins or 0) + 1
                else:
                    registered.total_losses = (registered.total_losses or 0) + 1
        db.session.commit()
    except (DartFreakError, ValueError, TypeError):
        db.session.rollback()
        raise
    _log(f"[history] saved match={record.id} game={record.game_type} by={user.id}")
    return record


def _visible_query(user):
    participant_ids = db.session.query(MatchParticipant.match_record_id).filter(MatchParticipant.user_id == user.id)
    return MatchRecord.query.filter(or_(MatchRecord.saved_by_id == user.id, MatchRecord.id.in_(participant_ids)))


def list_history(user, limit: int = 50, game_type: Optional[str] = None) -> List[MatchRecord]:
    query = _visible_query(user)
    if game_type:
        query = query.filter(MatchRecord.game_type == GameType.parse(game_type).value)
    return query.order_by(MatchRecord.ended_at.desc(), MatchRecord.id.desc()).limit(limit).all()


def get_record(user, record_id) -> MatchRecord:
    record = db.session.get(MatchRecord, record_id)
    if record is None:
        raise MatchNotFound('Match record not found')
    if record.saved_by_id != user.id and user.id not in [p.user_id for p in record.participants]:
        raise NotAuthorized('Not your match')
    return record


def player_stats(user) -> Dict[str, Any]:
    records = _visible_query(user).all()
    played = [r for r in records if any(p.user_id == user.id for p in r.participants)]
    by_game: Dict[str, Dict[str, int]] = {}
    for record in played:
        entry = by_game.setdefault(record.game_name, {'played': 0, 'won': 0})
        entry['played'] += 1
        if record.winner_user_id == user.id:
            entry['won'] += 1
    wins = user.total_wins or 0
    losses = user.total_losses or 0
    total = wins + losses
    return {
        'total_wins': wins,
        'total_losses': losses,
        'win_rate': round(wins / total, 3) if total else 0.0,
        'local_games_played': len(played),
        'by_game': by_game,
    }
