from App.database import db
from App.utils.time_utils import utc_now
from coverage_engine import DateOverrideRecord


class DateOverride(db.Model):
    """A date-scoped exception. ``zone_id`` of ``None`` applies to every zone."""
    __tablename__ = 'date_overrides'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    date = db.Column(db.Date, nullable=False, index=True)
    zone_id = db.Column(db.Integer, db.ForeignKey('zones.id', ondelete='CASCADE'), index=True)
    override_type = db.Column(db.String(24), nullable=False)
    reason = db.Column(db.String(255), nullable=False, default='')
    slot_adjustments = db.Column(db.JSON)
    created_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.CheckConstraint(
            "override_type IN ('CLOSURE', 'ADJUST_REQUIREMENTS', 'SPECIAL_EVENT')",
            name='check_valid_override_type',
        ),
        db.Index('idx_override_org_date', 'organization_id', 'date'),
    )

    zone = db.relationship('Zone')

    def __init__(self, organization_id, date, override_type, reason='', zone_id=None,
                 slot_adjustments=None, created_by_id=None):
        self.organization_id = organization_id
        self.date = date
        self.override_type = override_type
        self.reason = reason or ''
        self.zone_id = zone_id
        self.slot_adjustments = slot_adjustments
        self.created_by_id = created_by_id

    def to_record(self) -> DateOverrideRecord:
        return DateOverrideRecord(
            id=self.id,
            date=self.date,
            override_type=self.override_type,
            reason=self.reason,
            zone_id=self.zone_id,
            slot_adjustments=self.slot_adjustments or {},
        )

    def to_dict(self):
        data = self.to_record().to_dict()
        data['zone_name'] = self.zone.name if self.zone else None
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data
