import random
import string
import time

def generate_tag(school_code, record_id, device_type):
    """Device tag: SCHOOLCODE/RECORD_ID/devicetype

    Needs the store-assigned id, so it can only be computed after insert.
    An empty school code gives a tag with a leading '/'.
    """
    return f"{school_code}/{record_id}/{device_type.lower()}"

def generate_item_id():
    """Generates a unique item id: INV-<epoch millis>-XXXXXX"""
    millis = int(time.time() * 1000)
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"INV-{millis}-{suffix}"
