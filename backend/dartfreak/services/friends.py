import time
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_

from dartfreak import db
from dartfreak.errors import (
    AlreadyFriends,
    InvalidInvite,
    RequestNotFound,
    RequestPending,
    UserBlocked,
    UserNotFound,
)
from dartfreak.models import Friendship, Invite, User
from dartfreak.socketio_events import emit_friend_request


def _log(message: str) -> None:
    try:
        current_app.logger.info(message)
    except Exception:
        pass


def _pair(a_id, b_id):
    return or_(
        (Friendship.requester_id == a_id) & (Friendship.addressee_id == b_id),
        (Friendship.requester_id == b_id) & (Friendship.addressee_id == a_id),
    )


def relationship_between(a_id, b_id) -> Optional[Friendship]:
    return Friendship.query.filter(_pair(a_id, b_id)).first()


def _commit() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ---- friends ----

def list_friends(user) -> List[User]:
    rows = Friendship.query.filter(
        Friendship.status == 'accepted',
        or_(Friendship.requester_id == user.id, Friendship.addressee_id == user.id),
    ).all()
    friends = [row.other_user(user.id) for row in rows]
    return sorted(friends, key=lambda u: (u.display_name or u.username).lower())


def remove_friend(user, friend_id) -> None:
    row = Friendship.query.filter(_pair(user.id, friend_id), Friendship.status == 'accepted').first()
    if row is None:
        raise UserNotFound('Not friends with this user')
    db.session.delete(row)
    _commit()
    _log(f"[friends] removed {user.id} x {friend_id}")


def search_users(user, query: str, limit: int = 20) -> List[User]:
    query = (query or '').strip()
    if not query:
        return []
    pattern = f"%{query}%"
    return (
        User.query.filter(
            User.id != user.id,
            or_(User.username.ilike(pattern), User.display_name.ilike(pattern)),
        )
        .order_by(User.username)
        .limit(limit)
        .all()
    )


# ---- requests ----

def send_request(user, addressee_id) -> Friendship:
    """Send a friend request to ``addressee_id``.

    Fails when the two are already friends, a request is pending in either
    direction, or either side has blocked the other.
    """
    try:
        addressee_id = int(addressee_id)
    except (TypeError, ValueError):
        raise UserNotFound()
    if addressee_id == user.id:
        raise UserNotFound('You cannot add yourself')
    if db.session.get(User, addressee_id) is None:
        raise UserNotFound()
    existing = relationship_between(user.id, addressee_id)
    if existing is not None:
        if existing.status == 'accepted':
            raise AlreadyFriends()
        if existing.status == 'pending':
            raise RequestPending()
        raise UserBlocked()
    row = Friendship(requester_id=user.id, addressee_id=addressee_id, status='pending')
    db.session.add(row)
    _commit()
    _log(f"[friends] request {user.id} -> {addressee_id}")
    emit_friend_request(row)
    return row


def pending_requests(user):
    received = Friendship.query.filter_by(addressee_id=user.id, status='pending').order_by(Friendship.created_at.desc()).all()
    sent = Friendship.query.filter_by(requester_id=user.id, status='pending').order_by(Friendship.created_at.desc()).all()
    return received, sent


def _received_request(user, request_id) -> Friendship:
    row = db.session.get(Friendship, request_id)
    if row is None or row.status != 'pending' or row.addressee_id != user.id:
        raise RequestNotFound()
    return row


def accept_request(user, request_id) -> Friendship:
    row = _received_request(user, request_id)
    row.status = 'accepted'
    row.updated_at = time.time()
    _commit()
    _log(f"[friends] accepted {row.requester_id} x {user.id}")
    return row


def deny_request(user, request_id) -> None:
    row = _received_request(user, request_id)
    db.session.delete(row)
    _commit()
    _log(f"[friends] denied {row.requester_id} -> {user.id}")


def withdraw_request(user, request_id) -> None:
    row = db.session.get(Friendship, request_id)
    if row is None or row.status != 'pending' or row.requester_id != user.id:
        raise RequestNotFound()
    db.session.delete(row)
    _commit()


# ---- blocking ----

def block_user(user, target_id) -> Friendship:
    """Block ``target_id``, replacing any friendship or pending request.

    A block from the other side is kept, so each user holds their own block
    and lifting one leaves the other in place.
    """
    try:
        target_id = int(target_id)
    except (TypeError, ValueError):
        raise UserNotFound()
    if target_id == user.id or db.session.get(User, target_id) is None:
        raise UserNotFound()
    reverse = Friendship.query.filter_by(requester_id=target_id, addressee_id=user.id).first()
    if reverse is not None and reverse.status != 'blocked':
        db.session.delete(reverse)
    row = Friendship.query.filter_by(requester_id=user.id, addressee_id=target_id).first()
    if row is None:
        row = Friendship(requester_id=user.id, addressee_id=target_id, status='blocked')
        db.session.add(row)
    else:
        row.status = 'blocked'
    _commit()
    _log(f"[friends] blocked {user.id} -> {target_id}")
    return row


def unblock_user(user, target_id) -> None:
    row = Friendship.query.filter_by(requester_id=user.id, addressee_id=target_id, status='blocked').first()
    if row is None:
        raise UserNotFound('User is not blocked')
    db.session.delete(row)
    _commit()


def blocked_users(user) -> List[User]:
    rows = Friendship.query.filter_by(requester_id=user.id, status='blocked').all()
    return [row.addressee for row in rows]


# ---- invites ----

def create_invite(user) -> Invite:
    days = int(current_app.config.get('INVITE_EXPIRY_DAYS', 7))
    invite = Invite(inviter_id=user.id, expires_at=time.time() + days * 86400)
    db.session.add(invite)
    _commit()
    return invite


def invite_url(invite: Invite) -> str:
    base = current_app.config.get('INVITE_URL_BASE', 'https://www.dartfreak.com/invite')
    return f"{base.rstrip('/')}/{invite.token}"


def claim_invite(user, token) -> str:
    """Claim an invite link and befriend the inviter.

    Returns ``claimed``, ``already_friends`` or ``pending_exists``; other
    outcomes raise :class:`InvalidInvite` with the outcome as ``result``.
    """
    invite = Invite.query.filter_by(token=token).first() if token else None
    if invite is None:
        raise InvalidInvite('Invite not found', result='invalid')
    if invite.inviter_id == user.id:
        raise InvalidInvite('You cannot claim your own invite', result='self_invite')
    if invite.claimed_by is not None:
        raise InvalidInvite('Invite has already been used', result='already_used')
    if invite.expires_at < time.time():
        raise InvalidInvite('Invite has expired', result='expired')

    existing = relationship_between(user.id, invite.inviter_id)
    if existing is not None and existing.status == 'blocked':
        raise InvalidInvite('Invite cannot be claimed', result='blocked')
    if existing is not None and existing.status == 'accepted':
        result = 'already_friends'
    elif existing is not None:
        result = 'pending_exists'
    else:
        db.session.add(Friendship(requester_id=invite.inviter_id, addressee_id=user.id, status='accepted'))
        result = 'claimed'
    invite.claimed_by = user.id
    invite.claimed_at = time.time()
    _commit()
    _log(f"[invite] token={invite.token[:6]} claimed_by={user.id} result={result}")
    return result
