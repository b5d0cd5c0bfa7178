import os
import logging
from flask import Flask, render_template, request, redirect, url_for, flash, jsonify, send_file
from flask_socketio import SocketIO

from config import Config
from models import db, School, Inventory, Issue, CATEGORIES, CONDITIONS, LOCATIONS, ISSUE_TYPES

# Services
from services.devices import ManifestRequest, SparseRowsRequest
from services.schools import onboard_school, update_school
from services.inventory import create_item, update_item, discard_item, bulk_update
from services.issues import report_issue, list_issues
from services.reports import (
    get_overview, get_school_health, get_school_problems, get_category_problems, get_maintenance_items
)
from services.barcodes import get_label_path

app = Flask(__name__)
app.config.from_object(Config)

logging.basicConfig(level=app.config['LOG_LEVEL'], format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger = logging.getLogger(__name__)

db.init_app(app)
# PythonAnywhere does not support WebSockets; force threading/polling fallback
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

def seed_demo_data():
    office = School(name="Office")
    soffi = School(school_code="SCH001", name="GPS Soffi Pind")
    tajpur = School(school_code="SCH002", name="GPS Tajpur")
    db.session.add_all([office, soffi, tajpur])
    db.session.commit()

    db.session.add_all([
        Inventory(item_name="Wireless Mouse", category="MOUSE", location="AT_SCHOOL", quantity=30,
                  min_stock_level=10, school_id=soffi.id, notes="Wireless", last_modified_by="admin@ngo.org"),
        Inventory(item_name="Mechanical Keyboard", category="KEYBOARD", location="AT_SCHOOL", quantity=25,
                  min_stock_level=8, school_id=tajpur.id, last_modified_by="admin@ngo.org"),
        Inventory(item_name="Desktop CPU", category="CPU", location="IN_OFFICE", condition="NOT_WORKING",
                  quantity=2, school_id=office.id, last_modified_by="admin@ngo.org"),
    ])
    db.session.commit()
    logger.info("Seed data created")

# --- Startup ---
with app.app_context():
    os.makedirs(app.config['BARCODE_DIR'], exist_ok=True)

    # Skip DB init/seeding if testing (let tests handle it)
    if not os.environ.get('FLASK_TESTING'):
        db.create_all()
        if not School.query.first():
            seed_demo_data()

@app.context_processor
def inject_choices():
    return dict(categories=CATEGORIES, conditions=CONDITIONS, locations=LOCATIONS, issue_types=ISSUE_TYPES)

def notify(reason, ids):
    """Tell open dashboards that inventory rows changed."""
    socketio.emit('inventory_changed', {'reason': reason, 'ids': ids})

def _int_or_none(value):
    return int(value) if value else None

def _item_fields(form):
    return dict(
        item_name=form['itemName'],
        category=form['category'],
        location=form['location'],
        condition=form['condition'],
        quantity=int(form['quantity']),
        min_stock_level=_int_or_none(form.get('minStockLevel')),
        item_tag=form.get('itemTag') or None,
        school_id=_int_or_none(form.get('schoolId')),
        notes=form.get('notes') or None,
        last_modified_by=form['lastModifiedBy'],
    )

# --- Pages ---

@app.route('/')
def dashboard():
    return render_template(
        'dashboard.html',
        stats=get_overview(),
        school_problems=get_school_problems(),
        category_problems=get_category_problems(),
    )

@app.route('/dashboards/school-health')
def school_health():
    report = get_school_health(
        search=request.args.get('q', '').strip() or None,
        sort_by=request.args.get('sort', 'health'),
        show_all=request.args.get('all', '1') == '1',
    )
    return render_template('school_health.html', report=report)

@app.route('/dashboards/maintenance')
def maintenance():
    return render_template('maintenance.html', report=get_maintenance_items())

@app.route('/schools')
def schools():
    return render_template('schools.html', schools=School.query.order_by(School.name).all())

@app.route('/schools/new', methods=['GET', 'POST'])
def school_new():
    if request.method == 'POST':
        name = request.form['name']
        code = request.form.get('schoolId', '').strip()
        try:
            school, devices = onboard_school(code, name, SparseRowsRequest.from_form(request.form))
            notify('school_onboarded', [d['id'] for d in devices])
            flash(f"School '{school.name}' created with {len(devices)} devices.", "success")
            return redirect(url_for('schools'))
        except Exception as e:
            db.session.rollback()
            logger.exception("Error creating school from form")
            flash(f"Error creating school: {e}", "danger")

    return render_template('school_new.html')

@app.route('/schools/<int:school_id>', methods=['GET', 'POST'])
def school_detail(school_id):
    school = School.query.get_or_404(school_id)
    if request.method == 'POST':
        try:
            update_school(school.id, request.form['name'])
            flash("School updated.", "success")
            return redirect(url_for('schools'))
        except Exception as e:
            flash(f"Error updating school: {e}", "danger")
    return render_template('school_detail.html', school=school)

@app.route('/inventory')
def inventory():
    query = Inventory.query
    for arg, column in (('category', Inventory.category), ('condition', Inventory.condition),
                        ('location', Inventory.location), ('school_id', Inventory.school_id)):
        value = request.args.get(arg)
        if value:
            query = query.filter(column == value)
    items = query.order_by(Inventory.item_name).all()
    return render_template('inventory.html', items=items)

@app.route('/inventory/new', methods=['GET', 'POST'])
def item_new():
    if request.method == 'POST':
        try:
            item = create_item(**_item_fields(request.form))
            flash(f"Item '{item.item_name}' created. Item ID: {item.item_id}", "success")
            return redirect(url_for('inventory'))
        except Exception as e:
            db.session.rollback()
            flash(f"Error creating item: {e}", "danger")

    return render_template('item_new.html', schools=School.query.order_by(School.name).all())

@app.route('/inventory/<int:item_id>', methods=['GET', 'POST'])
def item_detail(item_id):
    item = Inventory.query.get_or_404(item_id)
    if request.method == 'POST':
        try:
            update_item(item.id, **_item_fields(request.form))
            notify('item_updated', [item.id])
            flash("Item updated.", "success")
            return redirect(url_for('inventory'))
        except Exception as e:
            db.session.rollback()
            flash(f"Error updating item: {e}", "danger")
    return render_template('item_detail.html', item=item, schools=School.query.order_by(School.name).all())

@app.route('/inventory/<int:item_id>/discard', methods=['POST'])
def item_discard(item_id):
    Inventory.query.get_or_404(item_id)
    try:
        discard_item(item_id, actor=request.form.get('lastModifiedBy'))
        notify('item_discarded', [item_id])
        flash("Item discarded.", "success")
    except Exception as e:
        db.session.rollback()
        flash(f"Error discarding item: {e}", "danger")
    return redirect(url_for('inventory'))

@app.route('/inventory/update', methods=['POST'])
def inventory_bulk_form():
    raw_ids = request.form.getlist('item_ids')
    if not raw_ids:
        flash("Select at least one item.", "warning")
        return redirect(url_for('inventory'))
    try:
        ids = [int(i) for i in raw_ids]
        count = bulk_update(ids, location=request.form.get('location'), condition=request.form.get('condition'))
        notify('bulk_update', ids)
        flash(f"Updated {count} items.", "success")
    except Exception as e:
        db.session.rollback()
        flash(f"Error updating items: {e}", "danger")
    return redirect(url_for('inventory'))

@app.route('/inventory/<int:item_id>/label.png')
def item_label(item_id):
    item = Inventory.query.get_or_404(item_id)
    try:
        path = get_label_path(item, app.config['BARCODE_DIR'])
        return send_file(path, mimetype='image/png')
    except Exception as e:
        logger.exception("Error creating label for item %s", item_id)
        return f"Error creating label: {e}", 500

@app.route('/issues')
def issues():
    return render_template('issues.html', issues=list_issues())

@app.route('/issues/new', methods=['GET', 'POST'])
def issue_new():
    if request.method == 'POST':
        try:
            issue = report_issue(
                inventory_id=int(request.form['inventoryId']),
                issue_type=request.form['issueType'],
                description=request.form['description'],
                reported_by=request.form['reportedBy'],
            )
            notify('issue_reported', [issue.inventory_id])
            flash("Issue reported.", "success")
            return redirect(url_for('issues'))
        except Exception as e:
            db.session.rollback()
            flash(f"Error reporting issue: {e}", "danger")

    items = Inventory.query.filter(Inventory.location != 'DISCARDED').order_by(Inventory.item_name).all()
    return render_template('issue_new.html', items=items)

# --- JSON API ---

@app.route('/api/schools', methods=['POST'])
def api_create_school():
    try:
        data = request.get_json()
        school_data = data['school']
        manifest = ManifestRequest.from_json(data.get('devices'))

        school, devices = onboard_school(school_data.get('schoolId'), school_data.get('name'), manifest)
        notify('school_onboarded', [d['id'] for d in devices])
        return jsonify({'school': school.to_dict(), 'devices': devices}), 201
    except Exception:
        db.session.rollback()
        logger.exception("Error creating school")
        return jsonify({'error': 'Failed to create school'}), 500

@app.route('/api/schools-list')
def api_schools_list():
    try:
        rows = []
        for school in School.query.order_by(School.name).all():
            data = school.to_dict()
            data['inventory'] = [{'condition': i.condition, 'location': i.location} for i in school.inventory]
            rows.append(data)
        return jsonify(rows)
    except Exception:
        logger.exception("Error fetching schools list")
        return jsonify({'error': 'Failed to fetch schools'}), 500

@app.route('/api/inventory', methods=['POST'])
def api_create_inventory():
    try:
        data = request.get_json()
        item = create_item(
            item_name=data['itemName'],
            category=data['category'],
            quantity=data['quantity'],
            condition=data.get('condition') or 'WORKING',
            location=data.get('location') or 'IN_OFFICE',
            item_tag=data.get('itemTag'),
            school_id=data.get('schoolId'),
            min_stock_level=data.get('minStockLevel'),
            notes=data.get('notes'),
            last_modified_by=data['lastModifiedBy'],
        )
        return jsonify(item.to_dict()), 201
    except Exception:
        db.session.rollback()
        logger.exception("Error creating inventory")
        return jsonify({'error': 'Failed to create inventory item'}), 500

@app.route('/api/inventory-list')
def api_inventory_list():
    try:
        items = Inventory.query.order_by(Inventory.item_name).all()
        return jsonify([i.to_dict(include_school=True) for i in items])
    except Exception:
        logger.exception("Error fetching inventory list")
        return jsonify({'error': 'Failed to fetch inventory'}), 500

@app.route('/api/inventory/bulk-update', methods=['POST'])
def api_bulk_update():
    try:
        data = request.get_json()
        item_ids = data['itemIds']
        updated = bulk_update(item_ids, location=data.get('location'), condition=data.get('condition'))
        notify('bulk_update', item_ids)
        return jsonify({'success': True, 'updated': updated})
    except Exception:
        db.session.rollback()
        logger.exception("Error bulk updating inventory")
        return jsonify({'error': 'Failed to bulk update inventory'}), 500

@app.route('/api/issues', methods=['POST'])
def api_create_issue():
    try:
        data = request.get_json()
        issue = report_issue(
            inventory_id=data['inventoryId'],
            issue_type=data['issueType'],
            description=data['description'],
            reported_by=data['reportedBy'],
            school_id=data.get('schoolId'),
        )
        notify('issue_reported', [issue.inventory_id])
        return jsonify(issue.to_dict()), 201
    except Exception:
        db.session.rollback()
        logger.exception("Error creating issue")
        return jsonify({'error': 'Failed to create issue'}), 500

@app.route('/api/dashboards/overview')
def api_overview():
    return jsonify(get_overview())

@app.route('/api/dashboards/school-health')
def api_school_health():
    return jsonify(get_school_health(
        search=request.args.get('q') or None,
        sort_by=request.args.get('sort', 'health'),
        show_all=request.args.get('all', '1') == '1',
    ))

@app.route('/api/dashboards/inventory-health')
def api_inventory_health():
    return jsonify({'schools': get_school_problems(), 'categories': get_category_problems()})

@app.route('/api/dashboards/maintenance')
def api_maintenance():
    return jsonify(get_maintenance_items())

if __name__ == '__main__':
    # Use socketio.run instead of app.run
    socketio.run(app, debug=True, host='0.0.0.0', port=5000, allow_unsafe_werkzeug=True)
