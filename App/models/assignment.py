from sqlalchemy import text

from App.database import db
from App.utils.time_utils import utc_now
from coverage_engine import REGION_SCOPE, TimeWindow


class DispatcherAssignment(db.Model):
    """A dispatcher holding a county (or region-wide ``ALL``) scope for a window."""
    __tablename__ = 'dispatcher_assignments'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    scope = db.Column(db.String(100), nullable=False)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    is_backup = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='check_dispatch_start_before_end'),
        db.Index(
            'uq_dispatcher_primary_slot', 'organization_id', 'scope', 'date', 'start_time', 'end_time',
            unique=True,
            sqlite_where=text('is_backup = 0'), postgresql_where=text('is_backup = false'),
        ),
        db.Index('idx_dispatcher_org_date', 'organization_id', 'date'),
    )

    user = db.relationship('User', foreign_keys=[user_id], backref=db.backref('dispatcher_assignments', lazy=True))
    created_by = db.relationship('User', foreign_keys=[created_by_id])

    def __init__(self, organization_id, user_id, scope, date, start_time, end_time,
                 is_backup=False, notes=None, created_by_id=None):
        self.organization_id = organization_id
        self.user_id = user_id
        self.scope = scope
        self.date = date
        self.start_time = start_time
        self.end_time = end_time
        self.is_backup = is_backup
        self.notes = notes
        self.created_by_id = created_by_id

    @property
    def is_regional(self):
        return self.scope == REGION_SCOPE

    def window(self) -> TimeWindow:
        return TimeWindow(date=self.date, start=self.start_time, end=self.end_time)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'scope': self.scope,
            'county': None if self.is_regional else self.scope,
            'date': self.date.isoformat(),
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'is_backup': self.is_backup,
            'notes': self.notes,
            'created_by_id': self.created_by_id,
        }

    def __repr__(self):
        kind = 'backup' if self.is_backup else 'primary'
        return f'<DispatcherAssignment {self.scope} {self.date} {kind} user={self.user_id}>'


class RegionalLeadAssignment(db.Model):
    """A region-wide lead for a date; the window defaults to the day's time blocks."""
    __tablename__ = 'regional_lead_assignments'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='check_lead_start_before_end'),
        db.Index(
            'uq_regional_lead_primary_slot', 'organization_id', 'date', 'start_time', 'end_time',
            unique=True,
            sqlite_where=text('is_primary = 1'), postgresql_where=text('is_primary = true'),
        ),
    )

    user = db.relationship('User', foreign_keys=[user_id], backref=db.backref('regional_lead_assignments', lazy=True))
    created_by = db.relationship('User', foreign_keys=[created_by_id])

    def __init__(self, organization_id, user_id, date, start_time, end_time,
                 is_primary=True, notes=None, created_by_id=None):
        self.organization_id = organization_id
        self.user_id = user_id
        self.date = date
        self.start_time = start_time
        self.end_time = end_time
        self.is_primary = is_primary
        self.notes = notes
        self.created_by_id = created_by_id

    @property
    def is_backup(self):
        return not self.is_primary

    def window(self) -> TimeWindow:
        return TimeWindow(date=self.date, start=self.start_time, end=self.end_time)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'user_name': self.user.name if self.user else None,
            'date': self.date.isoformat(),
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'is_primary': self.is_primary,
            'notes': self.notes,
            'created_by_id': self.created_by_id,
        }
