from functools import wraps

from flask import jsonify, request
from flask_jwt_extended import current_user


def coordinator_required(f):
    """Allow only coordinators; use beneath ``jwt_required_secure()``."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user or not current_user.is_coordinator():
            return jsonify({
                "success": False,
                "message": "You don't have permission to access this resource",
                "errors": {"code": "PERMISSION_DENIED", "path": request.path},
            }), 403
        return f(*args, **kwargs)
    return decorated_function
