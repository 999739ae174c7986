"""
Entry point for Flask.

Usage (from project root):

    flask --app run.py init-db
    flask --app run.py seed-vat-rates
    flask --app run.py --debug run

"""

from bizdash import create_app

# WSGI application object. `flask run` and WSGI servers look for this `app` variable.
app = create_app()

if __name__ == "__main__":
    # For direct `python run.py` usage (dev only). Use a WSGI server in production.
    app.run(debug=True, port=5000)
