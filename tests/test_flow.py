import os
os.environ['FLASK_TESTING'] = '1'
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'

import shutil
import tempfile
import unittest
from datetime import datetime
from unittest.mock import patch
from app import app, db, socketio, School, Inventory, Issue
from services.inventory import bulk_update, backfill_item_ids
from services.reports import get_overview, get_school_health, get_school_problems, get_category_problems, \
    get_maintenance_items

def make_item(name, category='MOUSE', condition='WORKING', location='AT_SCHOOL', school=None, **kw):
    item = Inventory(item_name=name, category=category, condition=condition, location=location,
                     school_id=school.id if school else None, last_modified_by='tester', **kw)
    db.session.add(item)
    return item

class TestFlow(unittest.TestCase):
    def setUp(self):
        app.config['TESTING'] = True
        self.app = app.test_client()
        self.ctx = app.app_context()
        self.ctx.push()
        db.create_all()

        # Seed Data
        self.school = School(school_code='SCH001', name='GPS Dhina')
        db.session.add(self.school)
        db.session.commit()

        self.mouse = make_item('Mouse', school=self.school, item_tag='SCH001/1/mouse')
        self.cpu = make_item('CPU', category='CPU', condition='NOT_WORKING', school=self.school)
        self.screen = make_item('Screen', category='SCREEN', location='IN_OFFICE')
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def test_bulk_update_reports_requested_count(self):
        missing_id = 4242
        resp = self.app.post('/api/inventory/bulk-update', json={
            'itemIds': [self.mouse.id, self.cpu.id, missing_id],
            'condition': 'DAMAGED',
        })
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json(), {'success': True, 'updated': 3})

        self.assertEqual(Inventory.query.get(self.mouse.id).condition, 'DAMAGED')
        self.assertEqual(Inventory.query.get(self.cpu.id).condition, 'DAMAGED')
        self.assertEqual(Inventory.query.get(self.screen.id).condition, 'WORKING')
        self.assertIsNone(Inventory.query.get(missing_id))

    def test_bulk_update_location_leaves_condition(self):
        bulk_update([self.mouse.id, self.cpu.id], location='IN_OFFICE')

        mouse = Inventory.query.get(self.mouse.id)
        cpu = Inventory.query.get(self.cpu.id)
        self.assertEqual(mouse.location, 'IN_OFFICE')
        self.assertEqual(cpu.location, 'IN_OFFICE')
        self.assertEqual(mouse.condition, 'WORKING')
        self.assertEqual(cpu.condition, 'NOT_WORKING')

    def test_bulk_update_empty_patch_refreshes_timestamp(self):
        old = datetime(2020, 1, 1)
        self.mouse.updated_at = old
        db.session.commit()

        self.assertEqual(bulk_update([self.mouse.id], location='', condition=None), 1)

        mouse = Inventory.query.get(self.mouse.id)
        self.assertGreater(mouse.updated_at, old)
        self.assertEqual(mouse.location, 'AT_SCHOOL')
        self.assertEqual(mouse.condition, 'WORKING')

    def test_bulk_update_rejects_unknown_condition(self):
        resp = self.app.post('/api/inventory/bulk-update', json={
            'itemIds': [self.mouse.id],
            'condition': 'ON_FIRE',
        })
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.get_json(), {'error': 'Failed to bulk update inventory'})
        self.assertEqual(Inventory.query.get(self.mouse.id).condition, 'WORKING')

    def test_bulk_update_form(self):
        client = socketio.test_client(app)
        client.get_received()

        resp = self.app.post('/inventory/update', data={
            'item_ids': [str(self.mouse.id), str(self.screen.id)],
            'location': 'DISCARDED',
            'condition': '',
        }, follow_redirects=True)
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Updated 2 items', resp.data)
        self.assertEqual(Inventory.query.get(self.screen.id).location, 'DISCARDED')

        events = [e for e in client.get_received() if e['name'] == 'inventory_changed']
        self.assertEqual(events[0]['args'][0]['reason'], 'bulk_update')
        client.disconnect()

    def test_bulk_update_form_bad_id(self):
        resp = self.app.post('/inventory/update', data={
            'item_ids': [str(self.mouse.id), 'abc'],
            'location': 'DISCARDED',
        })
        self.assertEqual(resp.status_code, 302)

        resp = self.app.get('/inventory')
        self.assertIn(b'Error updating items', resp.data)
        self.assertEqual(Inventory.query.get(self.mouse.id).location, 'AT_SCHOOL')

    def test_discard_failure_flashes(self):
        with patch('app.discard_item', side_effect=RuntimeError('store unavailable')):
            resp = self.app.post(f'/inventory/{self.mouse.id}/discard', data={'lastModifiedBy': 'clerk'},
                                 follow_redirects=True)
        self.assertEqual(resp.status_code, 200)
        self.assertIn(b'Error discarding item: store unavailable', resp.data)
        self.assertEqual(Inventory.query.get(self.mouse.id).location, 'AT_SCHOOL')

    def test_discard_keeps_record(self):
        resp = self.app.post(f'/inventory/{self.mouse.id}/discard', data={'lastModifiedBy': 'clerk'},
                             follow_redirects=True)
        self.assertEqual(resp.status_code, 200)

        mouse = Inventory.query.get(self.mouse.id)
        self.assertIsNotNone(mouse)
        self.assertEqual(mouse.location, 'DISCARDED')
        self.assertEqual(mouse.last_modified_by, 'clerk')

    def test_item_edit(self):
        resp = self.app.post(f'/inventory/{self.screen.id}', data={
            'itemName': 'Screen 24"',
            'category': 'SCREEN',
            'quantity': '2',
            'condition': 'DAMAGED',
            'location': 'AT_SCHOOL',
            'minStockLevel': '1',
            'itemTag': '',
            'schoolId': str(self.school.id),
            'notes': 'Cracked bezel',
            'lastModifiedBy': 'clerk',
        }, follow_redirects=True)
        self.assertEqual(resp.status_code, 200)

        screen = Inventory.query.get(self.screen.id)
        self.assertEqual(screen.condition, 'DAMAGED')
        self.assertEqual(screen.school_id, self.school.id)
        self.assertEqual(screen.min_stock_level, 1)
        self.assertEqual(screen.notes, 'Cracked bezel')

    def test_report_issue_copies_school(self):
        resp = self.app.post('/api/issues', json={
            'inventoryId': self.cpu.id,
            'issueType': 'HARDWARE_FAILURE',
            'description': 'Does not boot',
            'reportedBy': 'teacher@school.org',
        })
        self.assertEqual(resp.status_code, 201)
        data = resp.get_json()
        self.assertEqual(data['schoolId'], self.school.id)
        self.assertEqual(data['status'], 'OPEN')
        self.assertIsNone(data['resolvedAt'])

    def test_report_issue_form(self):
        resp = self.app.post('/issues/new', data={
            'inventoryId': str(self.screen.id),
            'issueType': 'PHYSICAL_DAMAGE',
            'description': 'Cracked',
            'reportedBy': 'office',
        }, follow_redirects=True)
        self.assertEqual(resp.status_code, 200)

        issue = Issue.query.first()
        self.assertEqual(issue.inventory_id, self.screen.id)
        self.assertIsNone(issue.school_id)

    def test_report_issue_unknown_item(self):
        resp = self.app.post('/api/issues', json={
            'inventoryId': 999,
            'issueType': 'OTHER',
            'description': 'Ghost',
            'reportedBy': 'someone',
        })
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(Issue.query.count(), 0)

    def test_backfill_item_ids(self):
        self.mouse.item_id = 'INV-KEEP'
        db.session.commit()

        self.assertEqual(backfill_item_ids(), 2)
        self.assertEqual(Inventory.query.get(self.mouse.id).item_id, 'INV-KEEP')
        self.assertTrue(Inventory.query.get(self.cpu.id).item_id.startswith('INV-'))
        self.assertEqual(Inventory.query.filter(Inventory.item_id.is_(None)).count(), 0)

    def test_lists(self):
        inventory = self.app.get('/api/inventory-list').get_json()
        self.assertEqual([i['itemName'] for i in inventory], ['CPU', 'Mouse', 'Screen'])
        self.assertEqual(inventory[0]['school'], {'id': self.school.id, 'name': 'GPS Dhina'})
        self.assertIsNone(inventory[2]['school'])

        schools = self.app.get('/api/schools-list').get_json()
        self.assertEqual(len(schools), 1)
        self.assertEqual(len(schools[0]['inventory']), 2)

    def test_label_image(self):
        barcode_dir = tempfile.mkdtemp()
        previous = app.config['BARCODE_DIR']
        app.config['BARCODE_DIR'] = barcode_dir
        try:
            resp = self.app.get(f'/inventory/{self.mouse.id}/label.png')
            self.assertEqual(resp.status_code, 200)
            self.assertEqual(resp.mimetype, 'image/png')
            self.assertTrue(os.listdir(barcode_dir))
            resp.close()
        finally:
            app.config['BARCODE_DIR'] = previous
            shutil.rmtree(barcode_dir)

class TestReports(unittest.TestCase):
    def setUp(self):
        app.config['TESTING'] = True
        self.app = app.test_client()
        self.ctx = app.app_context()
        self.ctx.push()
        db.create_all()

        self.good = School(school_code='A', name='Alpha School')
        self.mixed = School(school_code='B', name='Beta School')
        self.empty = School(school_code='C', name='Gamma School')
        db.session.add_all([self.good, self.mixed, self.empty])
        db.session.commit()

        for _ in range(4):
            make_item('Mouse', school=self.good)
        make_item('CPU', category='CPU', school=self.mixed)
        make_item('CPU', category='CPU', condition='NOT_WORKING', school=self.mixed)
        make_item('Screen', category='SCREEN', condition='DAMAGED', school=self.mixed)
        # Not at school: ignored by health, counted as a problem
        make_item('UPS', category='UPS', condition='DISCARDED', location='IN_OFFICE', school=self.mixed)
        db.session.commit()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    def test_overview(self):
        stats = get_overview()
        self.assertEqual(stats['total_schools'], 3)
        self.assertEqual(stats['total_items'], 8)
        self.assertEqual(stats['healthy_items'], 5)
        self.assertEqual(stats['defective_items'], 3)
        self.assertEqual(stats['healthy_percentage'], 63)
        self.assertEqual(stats['at_schools'], 7)
        self.assertEqual(stats['in_office'], 1)
        self.assertEqual(stats['discarded'], 0)

    def test_school_health(self):
        report = get_school_health()
        by_name = {s['name']: s for s in report['schools']}

        self.assertEqual(by_name['Alpha School']['health_score'], 100)
        self.assertEqual(by_name['Alpha School']['status'], 'healthy')

        beta = by_name['Beta School']
        self.assertEqual(beta['total'], 3)
        self.assertEqual(beta['working'], 1)
        self.assertEqual(beta['defective'], 2)
        self.assertEqual(beta['health_score'], 33)
        self.assertEqual(beta['status'], 'critical')
        self.assertEqual(beta['in_office'], 1)

        # No devices counts as fully healthy
        self.assertEqual(by_name['Gamma School']['health_score'], 100)

        self.assertEqual(report['summary'], {'total_schools': 3, 'healthy': 2, 'moderate': 0, 'critical': 1})
        self.assertEqual(report['schools'][0]['name'], 'Beta School')

    def test_school_health_filters(self):
        report = get_school_health(show_all=False)
        self.assertEqual([s['name'] for s in report['schools']], ['Beta School'])

        report = get_school_health(search='gAm', sort_by='name')
        self.assertEqual([s['name'] for s in report['schools']], ['Gamma School'])

        report = get_school_health(sort_by='problems')
        self.assertEqual(report['schools'][0]['name'], 'Beta School')

    def test_inventory_health(self):
        problems = get_school_problems()
        self.assertEqual(problems, [{'id': self.mixed.id, 'name': 'Beta School', 'total': 4, 'defective': 3}])

        categories = {c['category']: c for c in get_category_problems()}
        self.assertNotIn('MOUSE', categories)
        self.assertEqual(categories['CPU'], {'category': 'CPU', 'total': 2, 'defective': 1, 'percentage': 50})
        self.assertEqual(categories['SCREEN']['percentage'], 100)

    def test_maintenance(self):
        cpu = Inventory.query.filter_by(condition='NOT_WORKING').first()
        db.session.add_all([
            Issue(inventory_id=cpu.id, issue_type='OTHER', description='old', reported_by='x',
                  reported_at=datetime(2024, 1, 1)),
            Issue(inventory_id=cpu.id, issue_type='HARDWARE_FAILURE', description='new', reported_by='x',
                  reported_at=datetime(2024, 6, 1)),
        ])
        db.session.commit()

        report = get_maintenance_items()
        self.assertEqual(len(report['items']), 3)
        self.assertEqual(report['not_working'], 1)
        self.assertEqual(report['damaged'], 1)

        row = next(r for r in report['items'] if r['id'] == cpu.id)
        self.assertEqual(row['latestIssue']['description'], 'new')

    def test_dashboard_api(self):
        resp = self.app.get('/api/dashboards/school-health?all=0')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.get_json()['schools']), 1)

        resp = self.app.get('/api/dashboards/inventory-health')
        self.assertEqual(resp.get_json()['schools'][0]['defective'], 3)

        self.assertEqual(self.app.get('/api/dashboards/overview').get_json()['total_items'], 8)
        self.assertEqual(self.app.get('/api/dashboards/maintenance').status_code, 200)

if __name__ == '__main__':
    unittest.main()
