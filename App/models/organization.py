from App.database import db
from App.utils.time_utils import DEFAULT_TIMEZONE, utc_now
from coverage_engine import DispatcherMode


class Organization(db.Model):
    """An organization and the scheduling settings its coordinators control."""
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(60), nullable=False, unique=True)
    timezone = db.Column(db.String(64), nullable=False, default=DEFAULT_TIMEZONE)
    auto_confirm_rsvp = db.Column(db.Boolean, nullable=False, default=False)
    dispatcher_scheduling_mode = db.Column(db.String(10), nullable=False, default=DispatcherMode.ZONE.value)
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.CheckConstraint(
            "dispatcher_scheduling_mode IN ('REGIONAL', 'COUNTY', 'ZONE')",
            name='check_valid_dispatcher_mode',
        ),
    )

    zones = db.relationship('Zone', backref='organization', lazy=True, cascade="all, delete-orphan")
    time_blocks = db.relationship(
        'TimeBlock', backref='organization', lazy=True,
        cascade="all, delete-orphan", order_by='TimeBlock.position',
    )

    def __init__(self, name, slug, timezone=DEFAULT_TIMEZONE, auto_confirm_rsvp=False,
                 dispatcher_scheduling_mode=DispatcherMode.ZONE.value):
        self.name = name
        self.slug = slug
        self.timezone = timezone or DEFAULT_TIMEZONE
        self.auto_confirm_rsvp = auto_confirm_rsvp
        self.dispatcher_scheduling_mode = DispatcherMode.parse(dispatcher_scheduling_mode).value

    @property
    def mode(self) -> DispatcherMode:
        return DispatcherMode.parse(self.dispatcher_scheduling_mode)

    def get_json(self):
        return {
            'Organization ID': self.id,
            'Name': self.name,
            'Timezone': self.timezone,
        }

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'timezone': self.timezone,
            'auto_confirm_rsvp': self.auto_confirm_rsvp,
            'dispatcher_scheduling_mode': self.dispatcher_scheduling_mode,
        }

    def __repr__(self):
        return f'<Organization {self.slug}>'
