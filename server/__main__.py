import uvicorn
import logging
import threading
from database import init_db, SessionLocal
from server import settings
from server.api import app, board
from server.feed import seed_from_file

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def run_worker_thread():
    """Run the tick driver in a separate thread, sharing the API's board."""
    from server.worker import Worker
    worker = Worker(board)
    worker.run_loop()


if __name__ == "__main__":
    # Initialize database
    init_db()
    logger.info("Database initialized")

    if settings.FEED_SEED_FILE:
        db = SessionLocal()
        try:
            seed_from_file(db, settings.FEED_SEED_FILE)
        finally:
            db.close()

    # Start worker in background thread
    worker_thread = threading.Thread(target=run_worker_thread, daemon=True)
    worker_thread.start()
    logger.info("Worker thread started")

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
