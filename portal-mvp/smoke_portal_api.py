#!/usr/bin/env python3
"""
对运行中的 portal 后端跑一遍主流程的冒烟脚本

使用方法:
1. 确保Django服务器正在运行: python backend/manage.py runserver
2. 准备一个 ADMIN 账号（数据库里 roles 含 ADMIN）
3. 运行此脚本: python smoke_portal_api.py --admin-email admin@portal.local --admin-password ...

流程: 注册 → 登录 → 申请 affiliation → 管理员审批 → 建患者 → benefits investigation → 审计查询
"""

import argparse
import sys
import uuid

import requests

# API配置
BASE_URL = "http://localhost:8000/api/v1"


class PortalClient:

    def __init__(self, base_url, token=None):
        self.base_url = base_url.rstrip('/')
        self.session = requests.Session()
        self.correlation_id = str(uuid.uuid4())
        self.session.headers['X-Correlation-Id'] = self.correlation_id
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    def call(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        print(f"  {method.upper()} {url}")
        response = self.session.request(method, url, timeout=10, **kwargs)
        print(f"  响应状态码: {response.status_code}")
        body = response.json() if response.content else None
        if response.status_code >= 400:
            print(f"  ❌ {body.get('code')}: {body.get('message')}")
        return response.status_code, body

    def login(self, email, password):
        status, body = self.call('post', '/auth/login', json={'email': email, 'password': password})
        if status != 200:
            raise SystemExit(f"登录失败: {email}")
        self.session.headers['Authorization'] = f"Bearer {body['token']}"
        return body['user']


def section(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def run(base_url, admin_email, admin_password):
    staff_email = f"smoke-{uuid.uuid4().hex[:8]}@clinic.test"
    staff_password = "smoke-password"

    section("1. 注册 office staff 并登录")
    staff = PortalClient(base_url)
    staff.call('post', '/auth/register', json={
        'email': staff_email, 'password': staff_password, 'first_name': 'Smoke', 'last_name': 'Test',
    })
    user = staff.login(staff_email, staff_password)
    print(f"  ✅ 已登录: {user['email']} roles={user['roles']}")

    section("2. 选一个 provider 并申请 affiliation")
    status, providers = staff.call('get', '/providers', params={'size': 1})
    if not providers or not providers['items']:
        print("  ❌ 没有 provider，请先在数据库里准备一条")
        return 1
    provider = providers['items'][0]
    status, affiliation = staff.call('post', '/providers/associate', json={'provider_id': provider['id']})
    if status != 201:
        return 1
    print(f"  ✅ affiliation {affiliation['id']} -> {provider['name']} ({affiliation['status']})")

    section("3. 管理员审批")
    admin = PortalClient(base_url)
    admin.login(admin_email, admin_password)
    status, verified = admin.call(
        'post', f"/admin/providers/affiliations/{affiliation['id']}/verify",
        json={'approved': True, 'reason': 'smoke test'},
    )
    if status != 200:
        return 1
    print(f"  ✅ 状态: {verified['status']}")

    section("4. 创建患者")
    status, patient = staff.call('post', '/patients', json={
        'first_name': 'Smoke', 'last_name': 'Patient', 'date_of_birth': '1980-01-15', 'state': 'CA',
    })
    if status != 201:
        return 1
    print(f"  ✅ 患者 {patient['reference_id']} (id={patient['id']})")

    section("5. Benefits investigation")
    status, programs = staff.call('get', '/programs')
    if programs:
        status, result = staff.call('post', f"/patients/{patient['id']}/benefits-investigation", json={
            'investigation_type': 'PHARMACY',
            'program_id': programs[0]['id'],
            'payer_name': 'Blue Cross HMO',
            'payer_plan_id': 'PA-1234',
        })
        if status == 201:
            print(f"  ✅ coverage={result['coverage_type']} prior_auth={result['prior_auth_required']}")
            print(f"  备注: {result['notes']}")
    else:
        print("  ⚠️ 没有 active program，跳过")

    section("6. 审计查询（按 staff 的 correlation id）")
    status, events = admin.call('get', '/admin/audit', params={'correlation_id': staff.correlation_id})
    if status == 200:
        for event in events['items']:
            print(f"  - {event['created_at']} {event['event_type']} {event['resource_type']}/{event['resource_id']}")

    print("\n✅ 冒烟测试完成")
    return 0


def main():
    parser = argparse.ArgumentParser(description='Portal API smoke test')
    parser.add_argument('--base-url', default=BASE_URL)
    parser.add_argument('--admin-email', required=True)
    parser.add_argument('--admin-password', required=True)
    args = parser.parse_args()

    try:
        return run(args.base_url, args.admin_email, args.admin_password)
    except requests.exceptions.ConnectionError:
        print("\n❌ 连接错误: 无法连接到服务器")
        print("请确保Django服务器正在运行: python backend/manage.py runserver")
        return 1


if __name__ == "__main__":
    sys.exit(main())
