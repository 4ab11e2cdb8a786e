from werkzeug.security import check_password_hash, generate_password_hash
from App.database import db
from App.utils.time_utils import utc_now

COORDINATOR = 'coordinator'
VOLUNTEER = 'volunteer'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(40), nullable=False, unique=True)
    password = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=VOLUNTEER, index=True)
    name = db.Column(db.String(120))
    email = db.Column(db.String(120))
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.CheckConstraint("type IN ('coordinator', 'volunteer')", name='check_valid_user_type'),
    )

    organization = db.relationship('Organization', backref=db.backref('users', lazy=True))
    qualifications = db.relationship(
        'UserQualification', backref='user', lazy=True, cascade="all, delete-orphan"
    )

    def __init__(self, username, password, type=VOLUNTEER, organization_id=None, name=None, email=None):
        self.username = username
        self.set_password(password)
        self.type = type
        self.organization_id = organization_id
        self.name = name or username
        self.email = email

    def get_json(self):
        return {
            'Username': self.username,
            'Type': self.type
        }

    def to_dict(self):
        """Convert user to dictionary for API responses (excludes password)"""
        return {
            'id': self.id,
            'username': self.username,
            'name': self.name,
            'email': self.email,
            'type': self.type,
            'organization_id': self.organization_id,
            'qualified_roles': sorted(self.role_slugs()),
            'is_coordinator': self.is_coordinator(),
        }

    def set_password(self, password):
        """Create hashed password."""
        self.password = generate_password_hash(password)

    def check_password(self, password):
        """Check hashed password."""
        return check_password_hash(self.password, password)

    def is_coordinator(self):
        return self.type == COORDINATOR

    def is_volunteer(self):
        return self.type == VOLUNTEER

    def role_slugs(self):
        """The user's qualified-role set, as role slugs."""
        return {q.role.slug for q in self.qualifications if q.role is not None}

    def __repr__(self):
        return f'<User {self.username} ({self.type})>'
