from __future__ import annotations

import uuid

from pydantic import SecretStr

from mealplan.config import settings
from mealplan.core.security import hash_password

BASE = '/api/v1/plans'

PLAN = {
    'planName': 'Monthly Full',
    'days': '30D',
    'planType': 'both',
    'totalVouchers': 60,
    'planPrice': 4200,
    'compareAtPlanPrice': 4800,
    'description': 'Lunch and dinner for a month',
}


def test_admin_creates_and_lists_plans(client, admin_headers):
    resp = client.post(f'{BASE}/', json=PLAN, headers=admin_headers)
    assert resp.status_code == 201
    plan = resp.json()['data']
    assert plan['days'] == 30
    assert plan['planType'] == 'BOTH'
    assert plan['planPrice'] == 4200.0

    resp = client.post(f'{BASE}/', json=PLAN, headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()['code'] == 'DUPLICATE_PLAN'

    resp = client.get(f'{BASE}/', params={'planType': 'BOTH'}, headers=admin_headers)
    data = resp.json()['data']
    assert [p['id'] for p in data['subscriptionPlans']] == [plan['id']]
    assert data['pagination']['totalCount'] == 1


def test_invalid_plan_payload(client, admin_headers):
    resp = client.post(f'{BASE}/', json={**PLAN, 'days': 10}, headers=admin_headers)
    assert resp.status_code == 400
    assert resp.json()['code'] == 'VALIDATION_ERROR'
    assert resp.json()['data']['errors']


def test_public_listing_hides_inactive(client, make_plan):
    active = make_plan(plan_name='Lunch', plan_price='300.00')
    make_plan(plan_name='Cheap', plan_price='100.00')
    hidden = make_plan(plan_name='Old', is_active=False)

    resp = client.get(f'{BASE}/public')
    assert resp.status_code == 200
    names = [p['planName'] for p in resp.json()['data']]
    assert names == ['Cheap', 'Lunch']

    assert client.get(f'{BASE}/public/{active.id}').status_code == 200
    assert client.get(f'{BASE}/public/{hidden.id}').status_code == 404

    grouped = client.get(f'{BASE}/public/grouped').json()['data']
    assert list(grouped) == ['LUNCH_ONLY']


def test_update_deactivate_activate(client, make_plan, admin_headers):
    plan = make_plan()

    resp = client.put(f'{BASE}/{plan.id}', json={'planPrice': 550}, headers=admin_headers)
    assert resp.json()['data']['planPrice'] == 550.0

    resp = client.delete(f'{BASE}/{plan.id}', headers=admin_headers)
    assert resp.json()['data']['isActive'] is False

    resp = client.patch(f'{BASE}/{plan.id}/activate', headers=admin_headers)
    assert resp.json()['data']['isActive'] is True

    resp = client.patch(f'{BASE}/{plan.id}/activate', headers=admin_headers)
    assert resp.status_code == 400


def test_plan_admin_routes_need_admin(client, customer_headers):
    assert client.post(f'{BASE}/', json=PLAN).status_code == 401
    assert client.post(f'{BASE}/', json=PLAN, headers=customer_headers()).status_code == 403
    assert client.get(f'{BASE}/{uuid.uuid4()}', headers=customer_headers()).status_code == 403


def test_plan_stats(client, make_plan, admin_headers):
    make_plan()
    make_plan(plan_name='Old', is_active=False)
    resp = client.get(f'{BASE}/stats', headers=admin_headers)
    assert resp.json()['data']['activePlans'] == 1
    assert resp.json()['data']['inactivePlans'] == 1


def test_admin_login(client, monkeypatch):
    salt = '00112233445566778899aabbccddeeff'
    monkeypatch.setattr(settings, 'admin_password_hash', SecretStr(hash_password('kitchen-secret', salt)))

    resp = client.post('/api/v1/auth/login', json={'email': settings.admin_email, 'password': 'wrong'})
    assert resp.status_code == 401

    resp = client.post('/api/v1/auth/login', json={'email': settings.admin_email, 'password': 'kitchen-secret'})
    assert resp.status_code == 200
    token = resp.json()['access_token']

    resp = client.get('/api/v1/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert resp.json()['email'] == settings.admin_email


def test_health(client):
    resp = client.get('/api/v1/health')
    assert resp.status_code in (200, 503)
    assert 'database' in resp.json()
