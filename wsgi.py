"""WSGI entry point for Gunicorn."""
import logging
import sys
import os

# Ensure the app directory is in the Python path
sys.path.insert(0, os.path.dirname(__file__))

from app import create_app
from app.exceptions import DatabaseUnavailableError

try:
    # Create the application instance
    app = create_app()
except DatabaseUnavailableError as e:
    logging.getLogger(__name__).critical(f"Startup aborted: {e.message}")
    sys.exit(1)

if __name__ == "__main__":
    app.run()
