"""
Waitress WSGI entry point for production deployment.

Usage::

    python wsgi.py

Waitress serves requests on a thread pool; every thread shares the
application's ``PendingOperationTracker``, so two people dragging the
same position at once cannot both reach the API.
"""

import os

from waitress import serve

from orgchart import create_app

# Force production config when running via this entry point.
app = create_app(os.environ.get("FLASK_ENV", "production"))

if __name__ == "__main__":
    host = os.environ.get("WAITRESS_HOST", "127.0.0.1")
    port = int(os.environ.get("WAITRESS_PORT", "8080"))
    threads = int(os.environ.get("WAITRESS_THREADS", "4"))
    print(f"Starting Waitress on {host}:{port}")
    serve(app, host=host, port=port, threads=threads)
