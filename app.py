#!/usr/bin/env python
import logging
import os

from hospital_compass import create_app

logging.basicConfig(
    level=os.environ.get("COMPASS_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)

app = create_app()


if __name__ == "__main__":
    # Dev only – use gunicorn or similar in production
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
