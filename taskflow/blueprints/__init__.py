"""
TaskFlow
Blueprint registry and request helpers shared by the API blueprints.
"""

from flask import request

from taskflow.core.exceptions import ValidationError


def json_body() -> dict:
    """Parsed JSON object of the request; empty dict when there is no body."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def all_blueprints():
    from taskflow.blueprints.auth_bp import auth_bp
    from taskflow.blueprints.comments_bp import comments_bp
    from taskflow.blueprints.dashboard_bp import dashboard_bp
    from taskflow.blueprints.health_bp import health_bp
    from taskflow.blueprints.projects_bp import projects_bp
    from taskflow.blueprints.tasks_bp import tasks_bp
    from taskflow.blueprints.users_bp import users_bp

    return [health_bp, auth_bp, users_bp, projects_bp, tasks_bp, comments_bp, dashboard_bp]
