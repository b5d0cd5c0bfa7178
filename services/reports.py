from sqlalchemy import func
from sqlalchemy.orm import selectinload

from models import db, School, Inventory, DEFECTIVE_CONDITIONS

HEALTHY_THRESHOLD = 80
MODERATE_THRESHOLD = 50

def percent(part, total):
    """Whole percentage, halves rounded up."""
    return int(part * 100 / total + 0.5)

def get_overview():
    total_schools = School.query.count()
    by_condition = dict(
        db.session.query(Inventory.condition, func.count(Inventory.id)).group_by(Inventory.condition).all()
    )
    by_location = dict(
        db.session.query(Inventory.location, func.count(Inventory.id)).group_by(Inventory.location).all()
    )

    total_items = sum(by_condition.values())
    healthy = by_condition.get('WORKING', 0)

    return {
        'total_schools': total_schools,
        'total_items': total_items,
        'healthy_items': healthy,
        'defective_items': sum(by_condition.get(c, 0) for c in DEFECTIVE_CONDITIONS),
        'healthy_percentage': percent(healthy, total_items) if total_items else 0,
        'at_schools': by_location.get('AT_SCHOOL', 0),
        'in_office': by_location.get('IN_OFFICE', 0),
        'discarded': by_location.get('DISCARDED', 0),
    }

def health_status(score):
    if score >= HEALTHY_THRESHOLD:
        return 'healthy'
    if score >= MODERATE_THRESHOLD:
        return 'moderate'
    return 'critical'

def school_stats(school):
    # Health only looks at devices currently at the school
    at_school = [i for i in school.inventory if i.location == 'AT_SCHOOL']
    total = len(at_school)
    working = sum(1 for i in at_school if i.condition == 'WORKING')
    score = percent(working, total) if total else 100

    return {
        'id': school.id,
        'name': school.name,
        'total': total,
        'working': working,
        'defective': total - working,
        'health_score': score,
        'status': health_status(score),
        'at_school': total,
        'in_office': sum(1 for i in school.inventory if i.location == 'IN_OFFICE'),
    }

def get_school_health(search=None, sort_by='health', show_all=True):
    schools = School.query.options(selectinload(School.inventory)).order_by(School.name).all()
    stats = [school_stats(s) for s in schools]

    summary = {
        'total_schools': len(stats),
        'healthy': sum(1 for s in stats if s['status'] == 'healthy'),
        'moderate': sum(1 for s in stats if s['status'] == 'moderate'),
        'critical': sum(1 for s in stats if s['status'] == 'critical'),
    }

    rows = stats
    if search:
        term = search.lower()
        rows = [s for s in rows if term in s['name'].lower()]

    if sort_by == 'health':
        rows = sorted(rows, key=lambda s: s['health_score'])
    elif sort_by == 'name':
        rows = sorted(rows, key=lambda s: s['name'].lower())
    elif sort_by == 'problems':
        rows = sorted(rows, key=lambda s: s['defective'], reverse=True)

    if not show_all:
        rows = [s for s in rows if s['defective'] > 0]

    return {'summary': summary, 'schools': rows}

def get_school_problems(limit=10):
    """Schools ranked by number of defective devices (any location)."""
    schools = School.query.options(selectinload(School.inventory)).all()
    problems = []
    for school in schools:
        defective = sum(1 for i in school.inventory if i.condition in DEFECTIVE_CONDITIONS)
        if defective:
            problems.append({
                'id': school.id,
                'name': school.name,
                'total': len(school.inventory),
                'defective': defective,
            })
    problems.sort(key=lambda p: p['defective'], reverse=True)
    return problems[:limit]

def get_category_problems():
    rows = db.session.query(Inventory.category, Inventory.condition, func.count(Inventory.id)).group_by(
        Inventory.category, Inventory.condition
    ).all()

    totals = {}
    for category, condition, count in rows:
        entry = totals.setdefault(category, {'total': 0, 'defective': 0})
        entry['total'] += count
        if condition in DEFECTIVE_CONDITIONS:
            entry['defective'] += count

    problems = [
        {
            'category': category,
            'total': t['total'],
            'defective': t['defective'],
            'percentage': percent(t['defective'], t['total']),
        }
        for category, t in totals.items() if t['defective'] > 0
    ]
    problems.sort(key=lambda p: p['defective'], reverse=True)
    return problems

def get_maintenance_items():
    items = Inventory.query.filter(Inventory.condition.in_(DEFECTIVE_CONDITIONS)).order_by(
        Inventory.updated_at.desc()
    ).all()

    rows = []
    for item in items:
        latest = item.issues[0] if item.issues else None
        row = item.to_dict(include_school=True)
        row['latestIssue'] = latest.to_dict() if latest else None
        rows.append(row)

    return {
        'items': rows,
        'not_working': sum(1 for i in items if i.condition == 'NOT_WORKING'),
        'damaged': sum(1 for i in items if i.condition == 'DAMAGED'),
    }
