"""
Serve the Longa API with Waitress.

    FLASK_ENV=production python wsgi.py

Bind address and thread count come from WAITRESS_HOST, WAITRESS_PORT
and WAITRESS_THREADS. TLS is terminated by the reverse proxy in front.
"""

import logging
import os

from waitress import serve

from app import create_app

app = create_app(os.environ.get("FLASK_ENV", "production"))


def main() -> None:
    host = os.environ.get("WAITRESS_HOST", "127.0.0.1")
    port = int(os.environ.get("WAITRESS_PORT", "8080"))
    threads = int(os.environ.get("WAITRESS_THREADS", "8"))
    logging.getLogger("longa.wsgi").info(
        "Serving on http://%s:%s with %d threads", host, port, threads
    )
    serve(app, host=host, port=port, threads=threads, ident="longa")


if __name__ == "__main__":
    main()
