import logging
import sys

def setup_logging():
    """
    Configure application logging.

    Logs go to stdout so the container runtime can collect them. Journey
    events are logged with their route/session context inline in the message.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    # Reduce SQLAlchemy and httpx noise in logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logging.getLogger("mealroute")


# Create global logger instance
logger = setup_logging()
