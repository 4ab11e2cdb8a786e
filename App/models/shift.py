from App.database import db
from App.utils.time_utils import utc_now
from coverage_engine import CellRequirements, TimeWindow

DRAFT = 'DRAFT'
PUBLISHED = 'PUBLISHED'
CANCELLED = 'CANCELLED'


class Shift(db.Model):
    """A concrete (zone, date, window) instance volunteers sign up for.

    ``date`` is the organization-local calendar date; ``start_time`` and
    ``end_time`` are naive UTC instants.
    """
    __tablename__ = 'shifts'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    zone_id = db.Column(db.Integer, db.ForeignKey('zones.id', ondelete='CASCADE'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    shift_type = db.Column(db.String(40), nullable=False, default='VERIFICATION')
    title = db.Column(db.String(120))
    status = db.Column(db.String(12), nullable=False, default=DRAFT, index=True)
    min_volunteers = db.Column(db.Integer, nullable=False, default=1)
    ideal_volunteers = db.Column(db.Integer, nullable=False, default=2)
    max_volunteers = db.Column(db.Integer, nullable=False, default=4)
    requires_dispatcher = db.Column(db.Boolean, nullable=False, default=False)
    requires_zone_lead = db.Column(db.Boolean, nullable=False, default=False)
    meeting_location = db.Column(db.String(200))
    meeting_notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.CheckConstraint('start_time < end_time', name='check_shift_start_before_end'),
        db.CheckConstraint(
            'min_volunteers >= 0 AND min_volunteers <= ideal_volunteers AND ideal_volunteers <= max_volunteers',
            name='check_shift_capacity_order',
        ),
        db.CheckConstraint(
            "status IN ('DRAFT', 'PUBLISHED', 'CANCELLED')", name='check_valid_shift_status'
        ),
        db.Index('idx_shift_org_date', 'organization_id', 'date'),
    )

    zone = db.relationship('Zone', backref=db.backref('shifts', lazy=True))
    signups = db.relationship('Signup', backref='shift', lazy=True, cascade="all, delete-orphan")

    def __init__(self, organization_id, zone_id, date, start_time, end_time, min_volunteers=1,
                 ideal_volunteers=2, max_volunteers=4, shift_type='VERIFICATION', status=DRAFT,
                 requires_dispatcher=False, requires_zone_lead=False, title=None,
                 meeting_location=None, meeting_notes=None):
        self.organization_id = organization_id
        self.zone_id = zone_id
        self.date = date
        self.start_time = start_time
        self.end_time = end_time
        self.min_volunteers = min_volunteers
        self.ideal_volunteers = ideal_volunteers
        self.max_volunteers = max_volunteers
        self.shift_type = shift_type
        self.status = status
        self.requires_dispatcher = requires_dispatcher
        self.requires_zone_lead = requires_zone_lead
        self.title = title
        self.meeting_location = meeting_location
        self.meeting_notes = meeting_notes

    def validate(self):
        """Fail fast on impossible windows or capacity triples."""
        if self.end_time <= self.start_time:
            raise ValueError("Shift end must be after start time")
        if self.min_volunteers < 0:
            raise ValueError("min_volunteers must be non-negative")
        if not self.min_volunteers <= self.ideal_volunteers <= self.max_volunteers:
            raise ValueError("Capacity must satisfy min <= ideal <= max")
        if self.status not in (DRAFT, PUBLISHED, CANCELLED):
            raise ValueError(f"Invalid shift status: {self.status}")

    @property
    def is_published(self):
        return self.status == PUBLISHED

    def window(self) -> TimeWindow:
        return TimeWindow(date=self.date, start=self.start_time, end=self.end_time)

    def requirements(self) -> CellRequirements:
        return CellRequirements(
            needs_dispatcher=self.requires_dispatcher,
            needs_zone_lead=self.requires_zone_lead,
            min_volunteers=self.min_volunteers,
        )

    def get_duration_hours(self):
        return (self.end_time - self.start_time).total_seconds() / 3600

    def to_dict(self):
        return {
            'id': self.id,
            'zone_id': self.zone_id,
            'zone_name': self.zone.name if self.zone else None,
            'county': self.zone.county if self.zone else None,
            'date': self.date.isoformat(),
            'start_time': self.start_time.isoformat(),
            'end_time': self.end_time.isoformat(),
            'duration_hours': self.get_duration_hours(),
            'shift_type': self.shift_type,
            'title': self.title,
            'status': self.status,
            'min_volunteers': self.min_volunteers,
            'ideal_volunteers': self.ideal_volunteers,
            'max_volunteers': self.max_volunteers,
            'requires_dispatcher': self.requires_dispatcher,
            'requires_zone_lead': self.requires_zone_lead,
            'meeting_location': self.meeting_location,
            'meeting_notes': self.meeting_notes,
        }

    def __repr__(self):
        return f'<Shift {self.id} zone={self.zone_id} {self.date}>'
