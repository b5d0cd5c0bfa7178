import logging

from models import db, Inventory, Issue

logger = logging.getLogger(__name__)

def report_issue(inventory_id, issue_type, description, reported_by, school_id=None):
    """
    Records a problem against an existing item. The school is copied from the
    item when the caller does not supply one. New issues are always OPEN.
    """
    item = Inventory.query.get(inventory_id)
    if not item:
        raise ValueError(f"Item {inventory_id} not found")

    try:
        issue = Issue(
            inventory_id=item.id,
            school_id=school_id if school_id is not None else item.school_id,
            issue_type=issue_type,
            description=description,
            reported_by=reported_by,
        )
        db.session.add(issue)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Issue %s (%s) reported on item %s by %s", issue.id, issue_type, item.id, reported_by)
    return issue

def list_issues():
    return Issue.query.order_by(Issue.reported_at.desc()).all()
