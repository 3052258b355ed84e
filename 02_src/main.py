"""Main entry point: a demo service with Hubble capture installed."""

import os
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from sqlalchemy import create_engine, text

from hubble import Application, HubbleOptions, caller_scope, install_hubble
from hubble.config import DATA_DIR
from hubble.logging_config import get_logger, setup_logging

logger = get_logger("demo")


class OrdersController:
    """Demo endpoints backed by a small SQLite table."""

    def __init__(self, engine):
        self._engine = engine

    def list_orders(self) -> list[dict]:
        logger.info("Listing orders")
        with caller_scope("OrdersController.list_orders"):
            with self._engine.connect() as conn:
                rows = conn.execute(text("SELECT id, item FROM orders ORDER BY id"))
                return [{"id": row[0], "item": row[1]} for row in rows]

    def create_order(self, item: str) -> dict:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("INSERT INTO orders (item) VALUES (:item)"), {"item": item}
            )
            order_id = result.lastrowid
        logger.info(f"Created order {order_id}")
        return {"id": order_id, "item": item}


def create_demo_app(application: Application) -> FastAPI:
    """Host service whose traffic Hubble captures."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    engine = create_engine(f"sqlite:///{DATA_DIR / 'demo.db'}")
    with engine.begin() as conn:
        conn.execute(
            text("CREATE TABLE IF NOT EXISTS orders (id INTEGER PRIMARY KEY, item TEXT)")
        )
    application.instrument(engine)
    orders = OrdersController(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await application.start()
        yield
        await application.stop()

    app = FastAPI(title="Hubble demo", lifespan=lifespan)

    @app.get("/orders")
    def list_orders() -> list[dict]:
        return orders.list_orders()

    @app.post("/orders")
    def create_order(payload: dict) -> dict:
        item = payload.get("item")
        if not item:
            raise HTTPException(status_code=400, detail="item is required")
        return orders.create_order(item)

    @app.get("/fail")
    async def fail() -> dict:
        logger.error("About to fail")
        raise RuntimeError("Demo failure")

    install_hubble(app, application)
    return app


def main():
    """Run the demo service."""
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    setup_logging()

    # Get configuration from environment
    api_host = os.getenv("API_HOST", "localhost")
    api_port = int(os.getenv("API_PORT", "8000"))

    application = Application(HubbleOptions.from_env())
    app = create_demo_app(application)

    # Run with uvicorn
    uvicorn.run(
        app,
        host=api_host,
        port=api_port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
