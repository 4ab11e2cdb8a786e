from App.models import User
from App.models.user import COORDINATOR, VOLUNTEER
from App.database import db
from coverage_engine import ValidationFailed


def create_user(username, password, organization_id, type=VOLUNTEER, name=None, email=None):
    if type not in (COORDINATOR, VOLUNTEER):
        raise ValidationFailed(f"Invalid user type: {type}", field='type')
    if get_user_by_username(username):
        raise ValidationFailed(f"Username {username} is already taken", field='username')
    user = User(username, password, type, organization_id, name=name, email=email)
    db.session.add(user)
    db.session.commit()
    return user


def get_user(user_id):
    return db.session.get(User, user_id)


def get_user_by_username(username):
    return User.query.filter_by(username=username).first()


def get_all_users(organization_id=None):
    query = User.query
    if organization_id is not None:
        query = query.filter_by(organization_id=organization_id)
    return query.order_by(User.username).all()


def get_all_users_json(organization_id=None):
    return [user.get_json() for user in get_all_users(organization_id)]
