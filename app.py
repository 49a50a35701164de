# app.py
# WSGI entrypoint, e.g. `flask --app app run` or `gunicorn app:app`
from core import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
