import barcode
from barcode.writer import ImageWriter
import os
import re

def label_value(item):
    """What goes on a device label: the school tag, else the item id, else the record id."""
    return item.item_tag or item.item_id or str(item.id)

def _filename(record_id, code):
    # Tags contain '/', which cannot go in a filename
    safe = re.sub(r'[^A-Za-z0-9_-]', '_', code)
    return f"item{record_id}_{safe}"

def create_barcode_image(record_id, code, barcode_dir):
    """
    Generates a PNG image for the given code using Code128.
    Returns path to the generated image.
    """
    os.makedirs(barcode_dir, exist_ok=True)
    filepath = os.path.join(barcode_dir, _filename(record_id, code))

    # Python-barcode saves file with extension appended automatically
    rv = barcode.get_barcode_class('code128')
    return rv(code, writer=ImageWriter()).save(filepath)

def get_label_path(item, barcode_dir):
    """Returns absolute path to the item's label image, generating if missing"""
    code = label_value(item)
    expected_path = os.path.join(barcode_dir, f"{_filename(item.id, code)}.png")
    if not os.path.exists(expected_path):
        return create_barcode_image(item.id, code, barcode_dir)
    return expected_path
