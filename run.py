"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py --debug run

First start:

    flask --app run.py init-db          (or `flask --app run.py db upgrade` with migrations)
    flask --app run.py seed-settings
    flask --app run.py create-admin

"""

from crm import create_app

# WSGI application object; `flask run` and WSGI servers look for `app`.
app = create_app()

if __name__ == "__main__":
    # Dev only; use a WSGI server in production.
    app.run(debug=True)
