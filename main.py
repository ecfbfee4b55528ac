import logging

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

import config
from db import create_db_and_tables
from errors import register_exception_handlers
from routers import auth, donations, pages, ui, users

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="FoodDrop")

config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")
app.mount(config.UPLOAD_URL_PREFIX, StaticFiles(directory=config.UPLOAD_DIR), name="uploads")

register_exception_handlers(app)


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()
    logger.info("FoodDrop started, uploads served from %s", config.UPLOAD_DIR)


app.include_router(auth.router)
app.include_router(users.router, prefix="/users")
app.include_router(donations.router, prefix="/donations")

app.include_router(pages.router)
app.include_router(ui.router)
