"""
Device batch creation for a school.

Two request shapes feed the same creation loop:

* ``ManifestRequest`` - typed ``{itemType, quantity}`` lines from the JSON API.
  Each line expands into ``quantity`` unit records (quantity 1 each) that are
  tagged ``SCHOOLCODE/<id>/<type>`` once the store has assigned their id.
* ``SparseRowsRequest`` - loosely validated rows from the onboarding form,
  keyed by a client-side index. Each usable row becomes one record with its
  own ``INV-...`` item id.

The whole batch runs in one transaction: every unit is flushed to obtain its
id, then a single commit. Any failure rolls back every unit of the batch.
"""
import logging
import re
from dataclasses import dataclass, field

from flask import current_app

from models import db, Inventory
from services.identifiers import generate_tag, generate_item_id

logger = logging.getLogger(__name__)

ROW_KEY = re.compile(r'devices\[(\d+)\]\.(\w+)')

@dataclass
class DeviceUnit:
    item_name: str
    category: str
    quantity: int = 1
    item_tag: str = None
    item_id: str = None
    tag_after_insert: bool = False

@dataclass
class ManifestRequest:
    entries: list = field(default_factory=list)
    kind = 'manifest'

    @classmethod
    def from_json(cls, devices):
        """Build from the API payload: [{"itemType": "MOUSE", "quantity": 2}, ...]"""
        return cls(entries=[(d['itemType'], int(d['quantity'])) for d in devices or []])

    def units(self):
        for device_type, quantity in self.entries:
            # quantity <= 0 expands to nothing
            for _ in range(quantity):
                yield DeviceUnit(item_name=device_type, category=device_type, tag_after_insert=True)

    def __bool__(self):
        return bool(self.entries)

@dataclass
class SparseRowsRequest:
    rows: dict = field(default_factory=dict)
    kind = 'sparse_rows'

    @classmethod
    def from_form(cls, form):
        return cls(rows=parse_sparse_rows(form))

    def units(self):
        for index in sorted(self.rows, key=int):
            row = self.rows[index]
            name = (row.get('item') or '').strip()
            category = (row.get('category') or '').strip()
            if not name or not category:
                logger.debug("Skipping device row %s: missing item or category", index)
                continue
            yield DeviceUnit(
                item_name=name,
                category=category,
                quantity=_parse_quantity(row.get('quantity')),
                item_tag=(row.get('tag') or '').strip() or None,
                item_id=generate_item_id(),
            )

    def __bool__(self):
        return bool(self.rows)

def parse_sparse_rows(form):
    """
    Collects ``devices[<index>].<field>`` form keys into {index: {field: value}}.
    Indices are client-supplied and may have gaps.
    """
    rows = {}
    for key, value in form.items():
        match = ROW_KEY.fullmatch(key)
        if match:
            index, name = match.groups()
            rows.setdefault(index, {})[name] = value
    return rows

def _parse_quantity(raw):
    try:
        quantity = int(raw)
    except (TypeError, ValueError):
        return 1
    return quantity if quantity >= 1 else 1

def create_device_batch(school_id, school_code, request, actor=None, note=None):
    """
    Creates every device described by ``request`` for the given school.
    Returns [{'id', 'itemName', 'itemTag'}] in creation order.
    """
    actor = actor or _default_actor(request)
    if note is None and request.kind == 'manifest':
        note = current_app.config['ONBOARDING_NOTE']

    created = []
    try:
        for unit in request.units():
            item = Inventory(
                item_id=unit.item_id,
                item_name=unit.item_name,
                category=unit.category,
                quantity=unit.quantity,
                condition='WORKING',
                location='AT_SCHOOL',
                item_tag=unit.item_tag,
                school_id=school_id,
                last_modified_by=actor,
                notes=note,
            )
            db.session.add(item)
            db.session.flush()  # assigns item.id

            if unit.tag_after_insert:
                item.item_tag = generate_tag(school_code or '', item.id, unit.category)
                db.session.flush()

            created.append({
                'id': item.id,
                'itemName': item.item_name,
                'itemTag': item.item_tag,
            })

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.warning("Device batch for school %s rolled back after %d units", school_id, len(created))
        raise

    logger.info("Created %d devices for school %s (%s)", len(created), school_id, request.kind)
    return created

def _default_actor(request):
    if request.kind == 'sparse_rows':
        return current_app.config['FORM_SYSTEM_ACTOR']
    return current_app.config['SYSTEM_ACTOR']
