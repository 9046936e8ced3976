"""Starts the SQL dialect switch API.

``python app.py`` serves with the host, port and reload flag from
settings.yaml; ``uvicorn app:app --reload`` works as well. The conversion
commands live in ``app.cli`` (installed as ``sql-switch``).
"""

from app.cli import serve

if __name__ == "__main__":
    serve(host=None, port=None, reload=False)
