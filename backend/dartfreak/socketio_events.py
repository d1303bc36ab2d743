from flask_socketio import join_room, leave_room, emit
from dartfreak import socketio, db
from flask import current_app, request
from flask_login import current_user
from typing import Dict, Any


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx:
        _log(f"[ws-disconnect] user={ctx.get('user_id')} rooms={sorted(ctx.get('rooms', []))}")


def handle_join_user(data=None):
    if not current_user.is_authenticated:
        emit('error', {'message': 'Login required'})
        return
    room = f"user:{current_user.id}"
    join_room(room)
    _remember_room(room)
    emit('joined', {'room': room})


def handle_join_match(data):
    from dartfreak.models import RemoteMatch

    match_id = (data or {}).get('match_id')
    if not match_id:
        emit('error', {'message': 'match_id is required'})
        return
    if not current_user.is_authenticated:
        emit('error', {'message': 'Login required'})
        return
    try:
        match = db.session.get(RemoteMatch, int(match_id))
    except (TypeError, ValueError):
        match = None
    if match is None or not match.is_participant(current_user.id):
        emit('error', {'message': 'Match not found'})
        return
    room = f"match:{match.id}"
    join_room(room)
    _remember_room(room)
    emit('joined', {'room': room})
    # late joiners get the current state straight away
    emit('match_update', match_update_payload(match))


def handle_leave_match(data):
    match_id = (data or {}).get('match_id')
    if not match_id:
        emit('error', {'message': 'match_id is required'})
        return
    room = f"match:{match_id}"
    leave_room(room)
    ctx = _sid_to_ctx.get(_get_sid())
    if ctx:
        ctx['rooms'].discard(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})

# ---- Socket context ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}

def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore

def _remember_room(room: str) -> None:
    ctx = _sid_to_ctx.setdefault(_get_sid(), {'user_id': None, 'rooms': set()})
    ctx['user_id'] = current_user.id if current_user.is_authenticated else None
    ctx['rooms'].add(room)

# ---- Server-initiated events ----

def match_update_payload(match) -> Dict[str, Any]:
    payload = match.to_dict()
    payload['match_id'] = match.id
    return payload


def emit_match_update(match) -> None:
    """Push the match state to its room and to both players' user rooms."""
    payload = match_update_payload(match)
    rooms = [f"match:{match.id}", f"user:{match.challenger_id}", f"user:{match.receiver_id}"]
    try:
        # a single emit delivers once per socket even when it sits in several rooms
        socketio.emit('match_update', payload, to=rooms, namespace='/ws')
        _log(f"[emit] match_update match={match.id} status={match.status}")
    except Exception as exc:
        try:
            current_app.logger.warning(f"[emit-failed] match_update match={match.id}: {exc}")
        except Exception:
            pass


def emit_friend_request(friendship) -> None:
    try:
        socketio.emit('friend_request', friendship.to_dict(), to=f"user:{friendship.addressee_id}", namespace='/ws')
    except Exception as exc:
        try:
            current_app.logger.warning(f"[emit-failed] friend_request id={friendship.id}: {exc}")
        except Exception:
            pass


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_user': handle_join_user,
        'join_match': handle_join_match,
        'leave_match': handle_leave_match,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace=namespace)
