from datetime import datetime, timezone
import secrets

from flask_login import UserMixin

from squares import db, bcrypt


def utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Admin(UserMixin, db.Model):
    __tablename__ = 'admin'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
        }


def generate_auth_token():
    """Generate the URL-safe token that identifies a player in portal links."""
    return secrets.token_urlsafe(24)


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    auth_token = db.Column(db.String(64), unique=True, nullable=False, index=True, default=generate_auth_token)
    banned = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'email': self.email,
            'banned': self.banned,
        }


class Pool(db.Model):
    __tablename__ = 'pool'
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('admin.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    sport = db.Column(db.String(16), nullable=False, default='nfl')
    away_team = db.Column(db.String(50), nullable=False)
    home_team = db.Column(db.String(50), nullable=False)
    game_label = db.Column(db.String(50), nullable=True)
    denomination = db.Column(db.Integer, nullable=False)
    payout_structure = db.Column(db.String(32), nullable=False, default='standard')
    tip_pct = db.Column(db.Integer, nullable=False, default=10)
    max_per_player = db.Column(db.Integer, nullable=False, default=10)
    approval_threshold = db.Column(db.Integer, nullable=False, default=100)
    ot_rule = db.Column(db.String(16), nullable=False, default='include_final')
    # Both NULL until the grid is locked, then fixed for the life of the pool
    col_digits = db.Column(db.JSON(none_as_null=True), nullable=True)
    row_digits = db.Column(db.JSON(none_as_null=True), nullable=True)
    status = db.Column(db.String(16), nullable=False, default='open')  # open, locked, in_progress, final, cancelled, suspended
    locked_at = db.Column(db.DateTime, nullable=True)
    external_game_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    squares = db.relationship('Square', back_populates='pool', lazy='dynamic', cascade='all, delete-orphan')
    scores = db.relationship('Score', backref='pool', lazy='dynamic', cascade='all, delete-orphan')
    winners = db.relationship('Winner', backref='pool', lazy='dynamic', cascade='all, delete-orphan')
    members = db.relationship('PoolPlayer', backref='pool', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def is_locked(self):
        return self.col_digits is not None and self.row_digits is not None

    @property
    def total(self):
        return 100 * self.denomination

    def to_dict(self):
        return {
            'id': self.id,
            'admin_id': self.admin_id,
            'name': self.name,
            'sport': self.sport,
            'away_team': self.away_team,
            'home_team': self.home_team,
            'game_label': self.game_label,
            'denomination': self.denomination,
            'payout_structure': self.payout_structure,
            'tip_pct': self.tip_pct,
            'max_per_player': self.max_per_player,
            'approval_threshold': self.approval_threshold,
            'ot_rule': self.ot_rule,
            'col_digits': self.col_digits,
            'row_digits': self.row_digits,
            'status': self.status,
            'locked_at': _iso(self.locked_at),
            'external_game_id': self.external_game_id,
            'total': self.total,
        }


class PoolPlayer(db.Model):
    """A player's seat in one pool and whether they have paid for it."""
    __tablename__ = 'pool_player'
    __table_args__ = (
        db.UniqueConstraint('pool_id', 'player_id', name='uq_pool_player'),
    )
    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    paid = db.Column(db.Boolean, default=False, nullable=False)
    payment_status = db.Column(db.String(16), nullable=False, default='pending')  # pending, confirmed, deadbeat
    joined_at = db.Column(db.DateTime, default=utcnow)

    player = db.relationship('Player')

    def to_dict(self):
        return {
            'pool_id': self.pool_id,
            'player_id': self.player_id,
            'name': self.player.name if self.player else None,
            'paid': self.paid,
            'payment_status': self.payment_status,
            'joined_at': _iso(self.joined_at),
        }


class Square(db.Model):
    __tablename__ = 'square'
    __table_args__ = (
        db.UniqueConstraint('pool_id', 'row_idx', 'col_idx', name='uq_square_pool_cell'),
    )
    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=False, index=True)
    row_idx = db.Column(db.Integer, nullable=False)
    col_idx = db.Column(db.Integer, nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=True, index=True)
    claim_status = db.Column(db.String(16), nullable=False, default='available')  # available, pending, claimed
    claimed_at = db.Column(db.DateTime, nullable=True)
    requested_at = db.Column(db.DateTime, nullable=True)
    released_at = db.Column(db.DateTime, nullable=True)
    is_admin_override = db.Column(db.Boolean, default=False, nullable=False)

    pool = db.relationship('Pool', back_populates='squares')
    player = db.relationship('Player')

    def to_dict(self):
        return {
            'row': self.row_idx,
            'col': self.col_idx,
            'status': self.claim_status,
            'player_id': self.player_id,
            'player_name': self.player.name if self.player else None,
            'claimed_at': _iso(self.claimed_at),
            'requested_at': _iso(self.requested_at),
            'is_admin_override': self.is_admin_override,
        }


class Score(db.Model):
    __tablename__ = 'score'
    __table_args__ = (
        db.UniqueConstraint('pool_id', 'period_key', name='uq_score_pool_period'),
    )
    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=False, index=True)
    period_key = db.Column(db.String(10), nullable=False)
    period_label = db.Column(db.String(20), nullable=False)
    away_score = db.Column(db.Integer, nullable=False)
    home_score = db.Column(db.Integer, nullable=False)
    payout_pct = db.Column(db.Integer, nullable=False)
    entered_at = db.Column(db.DateTime, default=utcnow)
    entered_by = db.Column(db.String(64), nullable=True)

    def to_dict(self):
        return {
            'period_key': self.period_key,
            'period_label': self.period_label,
            'away_score': self.away_score,
            'home_score': self.home_score,
            'payout_pct': self.payout_pct,
            'entered_at': _iso(self.entered_at),
        }


class Winner(db.Model):
    __tablename__ = 'winner'
    __table_args__ = (
        db.UniqueConstraint('pool_id', 'period_key', name='uq_winner_pool_period'),
    )
    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=False, index=True)
    period_key = db.Column(db.String(10), nullable=False)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    square_row = db.Column(db.Integer, nullable=False)
    square_col = db.Column(db.Integer, nullable=False)
    payout_amount = db.Column(db.Integer, nullable=False)
    tip_suggestion = db.Column(db.Integer, nullable=False, default=0)
    notified = db.Column(db.Boolean, default=False, nullable=False)
    notified_at = db.Column(db.DateTime, nullable=True)

    player = db.relationship('Player')

    def to_dict(self):
        return {
            'period_key': self.period_key,
            'player_id': self.player_id,
            'player_name': self.player.name if self.player else None,
            'square_row': self.square_row,
            'square_col': self.square_col,
            'payout_amount': self.payout_amount,
            'tip_suggestion': self.tip_suggestion,
            'notified': self.notified,
        }


class LedgerEntry(db.Model):
    """Append-only money movement. Paid-in amounts are negative."""
    __tablename__ = 'ledger_entry'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=True, index=True)
    type = db.Column(db.String(16), nullable=False)  # buy_in, payout, tip, refund, adjustment
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'pool_id': self.pool_id,
            'type': self.type,
            'amount': self.amount,
            'description': self.description,
            'created_at': _iso(self.created_at),
        }


class AuditLog(db.Model):
    __tablename__ = 'audit_log'
    id = db.Column(db.Integer, primary_key=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=True, index=True)
    actor_type = db.Column(db.String(16), nullable=False)  # admin, player, system
    actor_id = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(64), nullable=False)
    detail = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'pool_id': self.pool_id,
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'action': self.action,
            'detail': self.detail,
            'created_at': _iso(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = 'notification'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False, index=True)
    pool_id = db.Column(db.Integer, db.ForeignKey('pool.id'), nullable=True)
    kind = db.Column(db.String(32), nullable=False)
    payload = db.Column(db.JSON, nullable=True)
    status = db.Column(db.String(16), nullable=False, default='sent')  # sent, failed
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'pool_id': self.pool_id,
            'kind': self.kind,
            'payload': self.payload,
            'status': self.status,
        }
