import os

# Default to production when served by gunicorn/uwsgi
os.environ.setdefault("ENV", "production")

from donorhub import create_app  # noqa: E402

app = create_app()
