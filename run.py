"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py init-db
    flask --app run.py --debug run

Schema changes go through Flask-Migrate:

    flask --app run.py db migrate -m "..."
    flask --app run.py db upgrade
"""

from salesdocs import create_app

# WSGI application object; `flask run` and WSGI servers look for `app`.
app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
