import logging
from datetime import datetime

from models import db, Inventory
from services.identifiers import generate_item_id

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    'item_name', 'category', 'quantity', 'condition', 'location',
    'min_stock_level', 'item_tag', 'school_id', 'notes', 'last_modified_by',
)

def _commit():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

def create_item(item_name, category, quantity, last_modified_by, condition='WORKING',
                location='IN_OFFICE', item_id=None, item_tag=None, school_id=None,
                min_stock_level=None, notes=None):
    """Manual single-record creation. Assigns an INV-... item id when none is given."""
    item = Inventory(
        item_id=item_id or generate_item_id(),
        item_name=item_name,
        category=category,
        quantity=quantity,
        condition=condition,
        location=location,
        item_tag=item_tag or None,
        school_id=school_id,
        min_stock_level=min_stock_level,
        notes=notes or None,
        last_modified_by=last_modified_by,
    )
    db.session.add(item)
    _commit()
    logger.info("Created item %s (%s)", item.id, item.item_id)
    return item

def get_item(item_id):
    item = Inventory.query.get(item_id)
    if not item:
        raise ValueError(f"Item {item_id} not found")
    return item

def update_item(item_id, **fields):
    """Direct field edit of one record; last write wins."""
    item = get_item(item_id)
    for name, value in fields.items():
        if name not in EDITABLE_FIELDS:
            raise ValueError(f"Field {name} cannot be edited")
        setattr(item, name, value)
    _commit()
    return item

def discard_item(item_id, actor=None):
    """Items are never removed, only moved to DISCARDED."""
    item = get_item(item_id)
    item.location = 'DISCARDED'
    if actor:
        item.last_modified_by = actor
    _commit()
    logger.info("Discarded item %s", item_id)
    return item

def bulk_update(item_ids, location=None, condition=None):
    """
    Applies location and/or condition to every record in item_ids in a single
    UPDATE. Empty values are left untouched; updated_at is always refreshed.
    Ids with no matching record are ignored.

    Returns the number of ids requested, not the number of rows matched.
    """
    values = {Inventory.updated_at: datetime.utcnow()}
    if location:
        values[Inventory.location] = location
    if condition:
        values[Inventory.condition] = condition

    matched = Inventory.query.filter(Inventory.id.in_(item_ids)).update(values, synchronize_session=False)
    _commit()

    logger.info("Bulk update of %d ids matched %d rows (location=%s, condition=%s)",
                len(item_ids), matched, location, condition)
    return len(item_ids)

def backfill_item_ids():
    """Assigns an item id to every legacy record that lacks one."""
    items = Inventory.query.filter(Inventory.item_id.is_(None)).all()
    for item in items:
        item.item_id = generate_item_id()
        logger.info("Updated item %s with itemId: %s", item.id, item.item_id)
    _commit()
    return len(items)
