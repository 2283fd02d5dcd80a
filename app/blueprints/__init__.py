"""
ProcessFlow
Blueprint registry.
"""


def register_blueprints(app):
    """Register every API blueprint on *app*."""
    from app.blueprints.audit_bp import audit_bp
    from app.blueprints.auth_bp import auth_bp
    from app.blueprints.chat_bp import chat_bp
    from app.blueprints.clients_bp import clients_bp
    from app.blueprints.dashboard_bp import dashboard_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.notification_bp import notification_bp
    from app.blueprints.orders_bp import orders_bp
    from app.blueprints.reporting_bp import reporting_bp
    from app.blueprints.settings_bp import settings_bp
    from app.blueprints.stages_bp import stages_bp
    from app.blueprints.users_bp import users_bp

    for bp in (
        health_bp,
        auth_bp,
        users_bp,
        stages_bp,
        clients_bp,
        orders_bp,
        notification_bp,
        chat_bp,
        dashboard_bp,
        reporting_bp,
        settings_bp,
        audit_bp,
    ):
        app.register_blueprint(bp)
