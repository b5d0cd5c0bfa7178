import logging

from models import db, School
from services.devices import create_device_batch

logger = logging.getLogger(__name__)

def create_school(school_code, name):
    # Empty codes are stored as NULL so several code-less schools can coexist
    school = School(school_code=school_code or None, name=name)
    db.session.add(school)
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Created school %s (%s)", school.id, school_code)
    return school

def onboard_school(school_code, name, request=None, actor=None):
    """
    Creates the school, then its devices.

    The school is committed on its own first; if that fails nothing else is
    attempted. The device batch is atomic, so a failure there leaves the
    school in place with no devices and re-raises.

    Returns (school, devices) where devices is the batch creator's list.
    """
    school = create_school(school_code, name)

    devices = []
    if request:
        devices = create_device_batch(school.id, school_code, request, actor=actor)

    return school, devices

def update_school(school_id, name):
    school = School.query.get(school_id)
    if not school:
        raise ValueError(f"School {school_id} not found")

    school.name = name
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return school
