from App.database import db
from coverage_engine import TimeBlock as GridBlock, ZoneRef


class Zone(db.Model):
    __tablename__ = 'zones'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    name = db.Column(db.String(100), nullable=False)
    county = db.Column(db.String(100), index=True)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'name', name='uq_zone_org_name'),
    )

    def __init__(self, organization_id, name, county=None, description=None, is_active=True):
        self.organization_id = organization_id
        self.name = name
        self.county = county
        self.description = description
        self.is_active = is_active

    def to_ref(self) -> ZoneRef:
        return ZoneRef(id=self.id, name=self.name, county=self.county)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'county': self.county,
            'description': self.description,
            'is_active': self.is_active,
        }

    def __repr__(self):
        return f'<Zone {self.name} ({self.county})>'


class TimeBlock(db.Model):
    """One of the organization's fixed daily time blocks, in local hours."""
    __tablename__ = 'time_blocks'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    position = db.Column(db.Integer, nullable=False)
    start_hour = db.Column(db.Integer, nullable=False)
    end_hour = db.Column(db.Integer, nullable=False)
    label = db.Column(db.String(40))

    __table_args__ = (
        db.CheckConstraint('start_hour >= 0 AND start_hour <= 23', name='check_block_start_hour'),
        db.CheckConstraint('end_hour >= 1 AND end_hour <= 24', name='check_block_end_hour'),
        db.CheckConstraint('start_hour < end_hour', name='check_block_start_before_end'),
        db.UniqueConstraint('organization_id', 'position', name='uq_time_block_position'),
    )

    def __init__(self, organization_id, position, start_hour, end_hour, label=None):
        self.organization_id = organization_id
        self.position = position
        self.start_hour = start_hour
        self.end_hour = end_hour
        self.label = label

    def to_block(self) -> GridBlock:
        return GridBlock(start_hour=self.start_hour, end_hour=self.end_hour, label=self.label or "")

    def to_dict(self):
        block = self.to_block()
        return {
            'id': self.id,
            'position': self.position,
            'start_hour': self.start_hour,
            'end_hour': self.end_hour,
            'label': block.label,
            'key': block.key,
        }
