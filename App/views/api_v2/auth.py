import logging

from flask_jwt_extended import current_user

from App.controllers.auth import login as auth_login
from App.views.api_v2 import api_v2
from App.views.api_v2.utils import api_error, api_success, jwt_required_secure, validate_json_request_secure

logger = logging.getLogger(__name__)


@api_v2.route('/auth/login', methods=['POST'])
def login():
    """
    Authenticate user and return JWT token

    Expected JSON body:
    {
        "username": "string",
        "password": "string"
    }

    Returns:
        Success: JWT token and user info
        Error: Authentication failure message
    """
    data, error = validate_json_request_secure(required_fields=['username', 'password'])
    if error:
        return error

    token, user = auth_login(data['username'], data['password'])
    if not token:
        logger.info('Login rejected', extra={'event': 'login_failed', 'username': data['username']})
        return api_error("Invalid username or password", status_code=401)

    logger.info('Login succeeded', extra={'event': 'login', 'user_id': user.id})
    return api_success({
        "user": user.to_dict(),
        "organization": user.organization.to_dict() if user.organization else None,
        "token": token,
    }, "Login successful")


@api_v2.route('/auth/me', methods=['GET'])
@jwt_required_secure()
def me():
    """Current user with qualified roles and organization settings."""
    return api_success({
        "user": current_user.to_dict(),
        "organization": current_user.organization.to_dict() if current_user.organization else None,
    })
