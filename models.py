from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
from datetime import datetime

db = SQLAlchemy()

CATEGORIES = ('UPS', 'KEYBOARD', 'MOUSE', 'CPU', 'SCREEN')
CONDITIONS = ('WORKING', 'NOT_WORKING', 'DAMAGED', 'DISCARDED')
LOCATIONS = ('IN_OFFICE', 'AT_SCHOOL', 'DISCARDED')
ISSUE_TYPES = ('HARDWARE_FAILURE', 'SOFTWARE_ISSUE', 'PHYSICAL_DAMAGE', 'MISSING', 'OTHER')
ISSUE_STATUSES = ('OPEN', 'IN_PROGRESS', 'RESOLVED', 'CLOSED')

# Anything other than WORKING counts against health
DEFECTIVE_CONDITIONS = ('NOT_WORKING', 'DAMAGED', 'DISCARDED')

# SQLite Optimization
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def _enum(values, name):
    # validate_strings rejects values outside the domain at bind time
    return db.Enum(*values, name=name, validate_strings=True)

def _iso(value):
    return value.isoformat() if value else None

class School(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    school_code = db.Column(db.String(50), unique=True, nullable=True)  # legacy rows have none
    name = db.Column(db.String(200), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    inventory = db.relationship('Inventory', backref='school', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'schoolId': self.school_code,
            'name': self.name,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }

class Inventory(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.String(50), unique=True, nullable=True, index=True)
    item_name = db.Column(db.String(200), nullable=False)
    category = db.Column(_enum(CATEGORIES, 'category'), nullable=False)
    quantity = db.Column(db.Integer, default=1, nullable=False)
    condition = db.Column(_enum(CONDITIONS, 'condition'), default='WORKING', nullable=False)
    location = db.Column(_enum(LOCATIONS, 'location'), default='IN_OFFICE', nullable=False)
    item_tag = db.Column(db.String(200), nullable=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=True, index=True)
    min_stock_level = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    last_modified_by = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)

    issues = db.relationship('Issue', backref='inventory', lazy=True, order_by='Issue.reported_at.desc()')

    __table_args__ = (
        db.CheckConstraint('quantity >= 1', name='ck_inventory_quantity_positive'),
        db.Index('idx_inventory_condition_location', 'condition', 'location'),
    )

    def to_dict(self, include_school=False):
        data = {
            'id': self.id,
            'itemId': self.item_id,
            'itemName': self.item_name,
            'category': self.category,
            'quantity': self.quantity,
            'condition': self.condition,
            'location': self.location,
            'itemTag': self.item_tag,
            'schoolId': self.school_id,
            'minStockLevel': self.min_stock_level,
            'notes': self.notes,
            'lastModifiedBy': self.last_modified_by,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_school:
            data['school'] = {'id': self.school.id, 'name': self.school.name} if self.school else None
        return data

class Issue(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey('inventory.id'), nullable=False, index=True)
    school_id = db.Column(db.Integer, db.ForeignKey('school.id'), nullable=True)
    issue_type = db.Column(_enum(ISSUE_TYPES, 'issue_type'), nullable=False)
    description = db.Column(db.Text, nullable=False)
    reported_by = db.Column(db.String(100), nullable=False)
    status = db.Column(_enum(ISSUE_STATUSES, 'issue_status'), default='OPEN', nullable=False)
    reported_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    resolved_at = db.Column(db.DateTime, nullable=True)

    school = db.relationship('School', backref='issues')

    def to_dict(self):
        return {
            'id': self.id,
            'inventoryId': self.inventory_id,
            'schoolId': self.school_id,
            'issueType': self.issue_type,
            'description': self.description,
            'reportedBy': self.reported_by,
            'status': self.status,
            'reportedAt': _iso(self.reported_at),
            'resolvedAt': _iso(self.resolved_at),
        }
