"""
Flask CLI entry point.

Usage:
    FLASK_APP=wsgi flask init-app-roles someApp --owner alice --env DEV
    FLASK_APP=wsgi flask delete-app-roles someApp --operator alice
"""

from portal import create_app

app = create_app()
