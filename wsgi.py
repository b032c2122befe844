import os

from auditgpt import create_app

app = create_app(os.getenv("FLASK_ENV", "development"))

if __name__ == "__main__":
    # needed inside Docker
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
