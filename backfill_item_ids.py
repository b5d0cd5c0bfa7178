"""Gives every legacy inventory row without an item id a fresh INV-... id."""
from app import app, logger
from services.inventory import backfill_item_ids

with app.app_context():
    count = backfill_item_ids()
    logger.info("Backfilled %d items. Done!", count)
