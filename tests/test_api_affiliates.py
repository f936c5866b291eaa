import re
import uuid
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select

from conftest import API, ADMIN_EMAIL, TEST_SECRET
from models.affiliates import Affiliates
from models.conversions import Conversions
from models.user import User
from utils import verify_password, write_token

CODE_PATTERN = re.compile(r"[0-9a-f]{4}-[a-z]{2}-[0-9a-f]{6}-[0-9a-z]{4}")


async def test_register_creates_profile_links_and_balance(client, session_factory, auth_headers, affiliate):
    response = await client.get(f"{API}/dashboard", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["profile"]["id"] == str(affiliate.user_id)
    assert data["profile"]["name"] == "Jane Guide"
    assert data["profile"]["role"] == "Travel Affiliate"
    assert data["balance"]["available"] == 0
    assert data["balance"]["pending"] == 0
    assert data["balance"]["paid"] == 0
    assert sorted(link["linkType"] for link in data["links"]) == [
        "facebook", "general", "instagram", "tiktok", "twitter"]
    assert all(CODE_PATTERN.fullmatch(link["refCode"]) for link in data["links"])
    assert all(link["clicks"] == 0 and link["conversions"] == 0 for link in data["links"])
    assert data["conversions"] == []


async def test_register_hashes_the_password_and_sends_welcome_emails(client, session_factory, mail_channel, affiliate):
    async with session_factory() as db:
        user = (await db.execute(select(User).where(User.email == affiliate.email))).scalars().one()

    assert user.password != affiliate.password
    assert verify_password(affiliate.password, user.password)
    assert mail_channel.recipients() == [affiliate.email, ADMIN_EMAIL]
    assert affiliate.password in mail_channel.sent[0].html


async def test_register_without_password_generates_one(client, session_factory, mail_channel):
    response = await client.post(f"{API}/register", json={"name": "Sam", "email": "sam@example.com"})

    assert response.status_code == 200
    async with session_factory() as db:
        user = (await db.execute(select(User).where(User.email == "sam@example.com"))).scalars().one()
    assert user.password
    assert "Your login details" not in mail_channel.sent[0].html


async def test_duplicate_email_is_rejected(client, session_factory, affiliate):
    response = await client.post(f"{API}/register", json={"name": "Other", "email": affiliate.email})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("This email is already registered")
    async with session_factory() as db:
        profiles = (await db.execute(select(Affiliates))).scalars().all()
    assert len(profiles) == 1


async def test_register_rejects_an_invalid_email(client):
    response = await client.post(f"{API}/register", json={"name": "Bad", "email": "not-an-email"})

    assert response.status_code == 400


async def test_login_with_wrong_password_is_unauthorized(client, affiliate):
    response = await client.post(f"{API}/login", json={"email": affiliate.email, "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


async def test_login_returns_a_bearer_token(client, affiliate):
    response = await client.post(f"{API}/login", json={"email": affiliate.email, "password": affiliate.password})

    body = response.json()
    assert body["success"] is True
    assert body["tokenType"] == "bearer"
    assert body["userId"] == str(affiliate.user_id)
    assert body["accessToken"]


async def test_dashboard_requires_a_token(client):
    missing = await client.get(f"{API}/dashboard")
    malformed = await client.get(f"{API}/dashboard", headers={"Authorization": "Token abc"})
    invalid = await client.get(f"{API}/dashboard", headers={"Authorization": "Bearer abc.def.ghi"})
    wrong_key = await client.get(f"{API}/dashboard", headers={
        "Authorization": "Bearer " + write_token({"user_id": str(uuid.uuid4())}, "another-secret")})

    assert [r.status_code for r in (missing, malformed, invalid, wrong_key)] == [401] * 4
    assert missing.json() == {"error": "Unauthorized", "details": "Authorization header missing"}
    assert invalid.json()["details"] == "Invalid token"


async def test_dashboard_for_a_token_without_profile_is_not_found(client):
    token = write_token({"user_id": str(uuid.uuid4())}, TEST_SECRET)

    response = await client.get(f"{API}/dashboard", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 404
    assert response.json() == {"error": "Affiliate not found"}


async def test_dashboard_lists_the_latest_ten_conversions_newest_first(client, session_factory, auth_headers, affiliate):
    link = affiliate.links["general"]
    start = datetime(2026, 10, 1, 12, 0, 0)
    async with session_factory() as db:
        async with db.begin():
            for i in range(12):
                db.add(Conversions(
                    affiliate_id=affiliate.user_id,
                    link_id=link.id,
                    ref_code=link.ref_code,
                    purchase_amount=Decimal(100 + i),
                    commission_amount=Decimal(10 + i),
                    package_name=f"Package {i}",
                    created_at=start + timedelta(hours=i),
                ))

    response = await client.get(f"{API}/dashboard", headers=auth_headers)

    names = [conversion["packageName"] for conversion in response.json()["conversions"]]
    assert names == [f"Package {i}" for i in range(11, 1, -1)]


async def test_dashboard_reflects_tracked_activity(client, auth_headers, affiliate):
    code = affiliate.codes["facebook"]
    await client.post(f"{API}/click", json={"refCode": code})
    await client.post(f"{API}/conversion", json={"affiliateCode": code, "purchaseAmount": 200})

    data = (await client.get(f"{API}/dashboard", headers=auth_headers)).json()

    assert data["balance"]["pending"] == 20.0
    [link] = [link for link in data["links"] if link["refCode"] == code]
    assert (link["clicks"], link["conversions"], link["earnings"]) == (1, 1, 20.0)
    [conversion] = data["conversions"]
    assert conversion["commissionAmount"] == 20.0
    assert conversion["status"] == "pending"


async def test_dashboard_orders_back_to_back_conversions_newest_first(client, auth_headers, affiliate):
    ids = []
    for amount in (100, 200, 300):
        response = await client.post(f"{API}/conversion", json={
            "affiliateCode": affiliate.codes["general"], "purchaseAmount": amount})
        ids.append(response.json()["conversionId"])

    data = (await client.get(f"{API}/dashboard", headers=auth_headers)).json()

    assert [conversion["id"] for conversion in data["conversions"]] == list(reversed(ids))


async def test_email_case_does_not_create_a_second_account(client, session_factory, affiliate):
    response = await client.post(f"{API}/register", json={"name": "Jane Again", "email": "JANE@EXAMPLE.COM"})

    assert response.status_code == 400
    assert response.json()["success"] is False
    async with session_factory() as db:
        users = (await db.execute(select(User))).scalars().all()
    assert [user.email for user in users] == ["jane@example.com"]


async def test_registered_email_is_stored_lowercase_and_login_ignores_case(client, session_factory):
    response = await client.post(f"{API}/register", json={
        "name": "Mixed", "email": "Mixed.Case@Example.com", "password": "pw-12345"})
    user_id = response.json()["userId"]

    login = await client.post(f"{API}/login", json={"email": "MIXED.CASE@example.COM", "password": "pw-12345"})

    assert login.status_code == 200
    assert login.json()["userId"] == user_id
    async with session_factory() as db:
        profile = await db.get(Affiliates, uuid.UUID(user_id))
    assert profile.email == "mixed.case@example.com"
