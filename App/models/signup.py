from sqlalchemy import text

from App.database import db
from App.utils.time_utils import utc_now
from coverage_engine import SignupStatus

_ACTIVE = "status IN ('PENDING', 'CONFIRMED')"
_EXCLUSIVE = _ACTIVE + " AND role_type IN ('DISPATCHER', 'ZONE_LEAD')"


class Signup(db.Model):
    """A user's claim on a role within a shift.

    Rows are never deleted on cancellation; cancelling is the DECLINED status.
    """
    __tablename__ = 'signups'

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey('shifts.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role_type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(12), nullable=False, default=SignupStatus.PENDING.value, index=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)
    confirmed_at = db.Column(db.DateTime)

    __table_args__ = (
        db.CheckConstraint(
            "role_type IN ('DISPATCHER', 'ZONE_LEAD', 'VERIFIER')", name='check_valid_signup_role'
        ),
        db.CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'DECLINED', 'NO_SHOW')", name='check_valid_signup_status'
        ),
        # Last line of defence for concurrent writers; controllers check first.
        db.Index(
            'uq_signup_active_user', 'shift_id', 'user_id', unique=True,
            sqlite_where=text(_ACTIVE), postgresql_where=text(_ACTIVE),
        ),
        db.Index(
            'uq_signup_exclusive_role', 'shift_id', 'role_type', unique=True,
            sqlite_where=text(_EXCLUSIVE), postgresql_where=text(_EXCLUSIVE),
        ),
    )

    user = db.relationship('User', backref=db.backref('signups', lazy=True))

    def __init__(self, shift_id, user_id, role_type, status=SignupStatus.PENDING.value, notes=None):
        self.shift_id = shift_id
        self.user_id = user_id
        self.role_type = role_type
        self.set_status(status)
        self.notes = notes

    @property
    def is_active(self):
        return SignupStatus.parse(self.status).is_active

    def set_status(self, status):
        status = SignupStatus.parse(status)
        self.status = status.value
        if status is SignupStatus.CONFIRMED:
            self.confirmed_at = utc_now()

    def get_json(self):
        return {
            'Signup ID': self.id,
            'Shift ID': self.shift_id,
            'User ID': self.user_id,
            'Role': self.role_type,
            'Status': self.status,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'shift_id': self.shift_id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'role_type': self.role_type,
            'status': self.status,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'confirmed_at': self.confirmed_at.isoformat() if self.confirmed_at else None,
        }
