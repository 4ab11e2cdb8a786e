from App.database import db
from App.utils.time_utils import utc_now


class QualifiedRole(db.Model):
    """A named capability, e.g. DISPATCHER or ZONE_LEAD."""
    __tablename__ = 'qualified_roles'

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True
    )
    slug = db.Column(db.String(40), nullable=False)
    name = db.Column(db.String(80), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('organization_id', 'slug', name='uq_qualified_role_org_slug'),
    )

    def __init__(self, organization_id, slug, name=None):
        self.organization_id = organization_id
        self.slug = slug.upper()
        self.name = name or slug.replace('_', ' ').title()

    def to_dict(self):
        return {'id': self.id, 'slug': self.slug, 'name': self.name}


class UserQualification(db.Model):
    __tablename__ = 'user_qualifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    qualified_role_id = db.Column(
        db.Integer, db.ForeignKey('qualified_roles.id', ondelete='CASCADE'), nullable=False
    )
    granted_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'qualified_role_id', name='uq_user_qualification'),
    )

    role = db.relationship('QualifiedRole', lazy='joined')

    def __init__(self, user_id, qualified_role_id):
        self.user_id = user_id
        self.qualified_role_id = qualified_role_id

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'role': self.role.slug if self.role else None,
            'granted_at': self.granted_at.isoformat() if self.granted_at else None,
        }
