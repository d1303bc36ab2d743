from dartfreak import db, bcrypt
from flask_login import UserMixin
import json
import secrets
import time


def _loads(raw, default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    total_wins = db.Column(db.Integer, default=0, nullable=False)
    total_losses = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.Float, default=time.time)
    last_seen_at = db.Column(db.Float, nullable=True)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name or self.username,
            'total_wins': self.total_wins or 0,
            'total_losses': self.total_losses or 0,
        }


class Friendship(db.Model):
    """Directed relationship row; status is pending, accepted or blocked.

    For ``blocked`` the requester is the user who blocked the addressee.
    """
    __tablename__ = 'friendship'
    __table_args__ = (db.UniqueConstraint('requester_id', 'addressee_id', name='uq_friendship_pair'),)
    id = db.Column(db.Integer, primary_key=True)
    requester_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    addressee_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(16), default='pending', nullable=False)
    created_at = db.Column(db.Float, default=time.time)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)

    requester = db.relationship('User', foreign_keys=[requester_id])
    addressee = db.relationship('User', foreign_keys=[addressee_id])

    def other_user(self, user_id):
        return self.addressee if self.requester_id == user_id else self.requester

    def to_dict(self):
        return {
            'id': self.id,
            'requester': self.requester.to_dict() if self.requester else None,
            'addressee': self.addressee.to_dict() if self.addressee else None,
            'status': self.status,
            'created_at': self.created_at,
        }


def generate_invite_token():
    return secrets.token_hex(16)


class Invite(db.Model):
    __tablename__ = 'invite'
    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True, default=generate_invite_token)
    inviter_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    claimed_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_at = db.Column(db.Float, default=time.time)
    claimed_at = db.Column(db.Float, nullable=True)
    expires_at = db.Column(db.Float, nullable=False)

    def to_dict(self):
        return {
            'token': self.token,
            'inviter_id': self.inviter_id,
            'claimed_by': self.claimed_by,
            'expires_at': self.expires_at,
        }


ACTIVE_MATCH_STATUSES = ('pending', 'ready', 'lobby', 'in_progress')
TERMINAL_MATCH_STATUSES = ('completed', 'expired', 'cancelled')


class RemoteMatch(db.Model):
    __tablename__ = 'remote_match'
    id = db.Column(db.Integer, primary_key=True)
    game_type = db.Column(db.String(16), nullable=False)  # 301, 501
    match_format = db.Column(db.Integer, default=1, nullable=False)
    challenger_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    receiver_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    status = db.Column(db.String(16), default='pending', nullable=False, index=True) # pending, ready, lobby, in_progress, completed, expired, cancelled
    current_player_id = db.Column(db.Integer, nullable=True)
    challenger_joined = db.Column(db.Boolean, default=False, nullable=False)
    receiver_joined = db.Column(db.Boolean, default=False, nullable=False)
    challenge_expires_at = db.Column(db.Float, nullable=True)
    join_window_expires_at = db.Column(db.Float, nullable=True)
    current_leg = db.Column(db.Integer, default=1, nullable=False)
    scores = db.Column(db.Text, nullable=True)  # JSON: {user_id: remaining}
    legs_won = db.Column(db.Text, nullable=True)  # JSON: {user_id: legs}
    last_visit_payload = db.Column(db.Text, nullable=True)  # JSON
    winner_id = db.Column(db.Integer, nullable=True)
    ended_at = db.Column(db.Float, nullable=True)
    ended_by = db.Column(db.Integer, nullable=True)
    ended_reason = db.Column(db.String(16), nullable=True)  # completed, cancelled, aborted, expired
    created_at = db.Column(db.Float, default=time.time)
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)

    challenger = db.relationship('User', foreign_keys=[challenger_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])
    visits = db.relationship('MatchVisit', backref='match', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def starting_score(self):
        return int(self.game_type)

    @property
    def is_active(self):
        return self.status in ACTIVE_MATCH_STATUSES

    def is_participant(self, user_id):
        return user_id in (self.challenger_id, self.receiver_id)

    def opponent_of(self, user_id):
        return self.receiver_id if user_id == self.challenger_id else self.challenger_id

    @property
    def deadline(self):
        """The expiry that applies in the current status, if any."""
        if self.status == 'pending':
            return self.challenge_expires_at
        if self.status in ('ready', 'lobby'):
            return self.join_window_expires_at
        return None

    def get_scores(self):
        return {int(k): v for k, v in _loads(self.scores, {}).items()}

    def set_scores(self, scores):
        self.scores = json.dumps({str(k): v for k, v in scores.items()})

    def get_legs_won(self):
        return {int(k): v for k, v in _loads(self.legs_won, {}).items()}

    def set_legs_won(self, legs):
        self.legs_won = json.dumps({str(k): v for k, v in legs.items()})

    def get_last_visit(self):
        return _loads(self.last_visit_payload, None)

    def to_dict(self):
        return {
            'id': self.id,
            'game_type': self.game_type,
            'game_name': self.game_type,
            'match_format': self.match_format,
            'status': self.status,
            'challenger': self.challenger.to_dict() if self.challenger else None,
            'receiver': self.receiver.to_dict() if self.receiver else None,
            'challenger_id': self.challenger_id,
            'receiver_id': self.receiver_id,
            'current_player_id': self.current_player_id,
            'challenge_expires_at': self.challenge_expires_at,
            'join_window_expires_at': self.join_window_expires_at,
            'current_leg': self.current_leg,
            'scores': {str(k): v for k, v in self.get_scores().items()},
            'legs_won': {str(k): v for k, v in self.get_legs_won().items()},
            'last_visit': self.get_last_visit(),
            'winner_id': self.winner_id,
            'ended_at': self.ended_at,
            'ended_by': self.ended_by,
            'ended_reason': self.ended_reason,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


class RemoteMatchLock(db.Model):
    """One lock per user: a user takes part in at most one accepted remote match."""
    __tablename__ = 'remote_match_lock'
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('remote_match.id'), nullable=False, index=True)
    lock_status = db.Column(db.String(16), nullable=False)  # ready, in_progress
    updated_at = db.Column(db.Float, default=time.time, onupdate=time.time)


class MatchVisit(db.Model):
    __tablename__ = 'match_visit'
    __table_args__ = (db.UniqueConstraint('match_id', 'visit_id', name='uq_match_visit_id'),)
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('remote_match.id'), nullable=False, index=True)
    visit_id = db.Column(db.String(64), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    leg = db.Column(db.Integer, default=1, nullable=False)
    turn_index = db.Column(db.Integer, nullable=False)
    darts = db.Column(db.Text, nullable=False)  # JSON list of darts
    score_before = db.Column(db.Integer, nullable=False)
    score_after = db.Column(db.Integer, nullable=False)
    is_bust = db.Column(db.Boolean, default=False, nullable=False)
    is_finish = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.Float, default=time.time)

    def to_dict(self):
        return {
            'visit_id': self.visit_id,
            'player_id': self.player_id,
            'leg': self.leg,
            'turn_index': self.turn_index,
            'darts': _loads(self.darts, []),
            'score_before': self.score_before,
            'score_after': self.score_after,
            'is_bust': self.is_bust,
            'is_finish': self.is_finish,
            'timestamp': self.created_at,
        }


class MatchRecord(db.Model):
    """A finished local match saved to history."""
    __tablename__ = 'match_record'
    id = db.Column(db.Integer, primary_key=True)
    game_type = db.Column(db.String(32), nullable=False)
    game_name = db.Column(db.String(64), nullable=False)
    match_format = db.Column(db.Integer, default=1, nullable=False)
    saved_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    winner_user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    winner_name = db.Column(db.String(64), nullable=True)
    started_at = db.Column(db.Float, nullable=True)
    ended_at = db.Column(db.Float, default=time.time)
    game_metadata = db.Column(db.Text, nullable=True)  # JSON

    participants = db.relationship('MatchParticipant', backref='record', lazy='select',
                                   order_by='MatchParticipant.player_order', cascade='all, delete-orphan')
    throws = db.relationship('MatchThrow', backref='record', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self, include_throws=False):
        data = {
            'id': self.id,
            'game_type': self.game_type,
            'game_name': self.game_name,
            'match_format': self.match_format,
            'winner_user_id': self.winner_user_id,
            'winner_name': self.winner_name,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'duration': int(self.ended_at - self.started_at) if self.started_at and self.ended_at else None,
            'metadata': _loads(self.game_metadata, {}),
            'players': [p.to_dict() for p in self.participants],
        }
        if include_throws:
            data['turns'] = [t.to_dict() for t in self.throws.order_by(MatchThrow.id).all()]
        return data


class MatchParticipant(db.Model):
    __tablename__ = 'match_participant'
    id = db.Column(db.Integer, primary_key=True)
    match_record_id = db.Column(db.Integer, db.ForeignKey('match_record.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, index=True)
    guest_name = db.Column(db.String(64), nullable=True)
    player_order = db.Column(db.Integer, nullable=False)
    final_score = db.Column(db.Integer, nullable=True)
    legs_won = db.Column(db.Integer, default=0)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'name': (self.user.display_name or self.user.username) if self.user else self.guest_name,
            'is_guest': self.user_id is None,
            'player_order': self.player_order,
            'final_score': self.final_score,
            'legs_won': self.legs_won or 0,
        }


class MatchThrow(db.Model):
    __tablename__ = 'match_throw'
    id = db.Column(db.Integer, primary_key=True)
    match_record_id = db.Column(db.Integer, db.ForeignKey('match_record.id'), nullable=False, index=True)
    player_order = db.Column(db.Integer, nullable=False)
    turn_index = db.Column(db.Integer, nullable=False)
    leg = db.Column(db.Integer, default=1, nullable=False)
    darts = db.Column(db.Text, nullable=False)  # JSON
    score_before = db.Column(db.Integer, nullable=False)
    score_after = db.Column(db.Integer, nullable=False)
    is_bust = db.Column(db.Boolean, default=False, nullable=False)
    game_metadata = db.Column(db.Text, nullable=True)  # JSON

    def to_dict(self):
        return {
            'player_order': self.player_order,
            'turn_index': self.turn_index,
            'leg': self.leg,
            'darts': _loads(self.darts, []),
            'score_before': self.score_before,
            'score_after': self.score_after,
            'is_bust': self.is_bust,
            'metadata': _loads(self.game_metadata, {}),
        }
