# Overview: WSGI/CLI entrypoint (FLASK_APP=wsgi.py).

from contribution import create_app

app = create_app()
