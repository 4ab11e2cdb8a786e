from flask_jwt_extended import JWTManager, create_access_token
from App.models import User
from App.database import db


def login(username, password):
    user = User.query.filter_by(username=username).first()
    if user and user.check_password(password):
        access_token = create_access_token(
            identity=str(user.id),
            additional_claims={'type': user.type, 'organization_id': user.organization_id}
        )
        return access_token, user
    return None, None


def setup_jwt(app):
    jwt = JWTManager(app)

    @jwt.user_identity_loader
    def user_identity_lookup(identity):
        return str(identity)

    @jwt.user_lookup_loader
    def user_lookup_callback(_jwt_header, jwt_data):
        identity = jwt_data["sub"]
        try:
            return db.session.get(User, int(identity))
        except (TypeError, ValueError):
            return None

    return jwt
