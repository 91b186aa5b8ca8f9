"""
WSGI entry point for the ALEKS Coins portal.

For gunicorn: wsgi:app
"""

from app import app

if __name__ == "__main__":
    app.run()
