from App.database import db
from coverage_engine import CellRequirements


class CoverageRequirement(db.Model):
    """Standing staffing need for one zone on one weekday, in local hours.

    ``day_of_week`` follows ``date.weekday()``: 0 is Monday.
    """
    __tablename__ = 'coverage_requirements'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    zone_id = db.Column(db.Integer, db.ForeignKey('zones.id', ondelete='CASCADE'), nullable=False, index=True)
    day_of_week = db.Column(db.Integer, nullable=False)
    start_hour = db.Column(db.Integer, nullable=False)
    end_hour = db.Column(db.Integer, nullable=False)
    min_volunteers = db.Column(db.Integer, nullable=False, default=2)
    needs_zone_lead = db.Column(db.Boolean, nullable=False, default=True)
    needs_dispatcher = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='check_requirement_weekday'),
        db.CheckConstraint('start_hour >= 0 AND start_hour <= 23', name='check_requirement_start_hour'),
        db.CheckConstraint('end_hour >= 1 AND end_hour <= 24', name='check_requirement_end_hour'),
        db.CheckConstraint('start_hour < end_hour', name='check_requirement_start_before_end'),
        db.CheckConstraint('min_volunteers >= 0', name='check_requirement_min_volunteers'),
        db.UniqueConstraint('zone_id', 'day_of_week', 'start_hour', name='uq_requirement_zone_day_start'),
    )

    zone = db.relationship('Zone')

    def __init__(self, organization_id, zone_id, day_of_week, start_hour, end_hour,
                 min_volunteers=2, needs_zone_lead=True, needs_dispatcher=True, is_active=True):
        self.organization_id = organization_id
        self.zone_id = zone_id
        self.day_of_week = day_of_week
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.min_volunteers = min_volunteers
        self.needs_zone_lead = needs_zone_lead
        self.needs_dispatcher = needs_dispatcher
        self.is_active = is_active

    def requirements(self) -> CellRequirements:
        return CellRequirements(
            needs_dispatcher=self.needs_dispatcher,
            needs_zone_lead=self.needs_zone_lead,
            min_volunteers=self.min_volunteers,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'zone_id': self.zone_id,
            'zone_name': self.zone.name if self.zone else None,
            'day_of_week': self.day_of_week,
            'start_hour': self.start_hour,
            'end_hour': self.end_hour,
            'min_volunteers': self.min_volunteers,
            'needs_zone_lead': self.needs_zone_lead,
            'needs_dispatcher': self.needs_dispatcher,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f'<CoverageRequirement zone={self.zone_id} day={self.day_of_week} {self.start_hour}-{self.end_hour}>'
