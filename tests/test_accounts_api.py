from conftest import ADMIN_KEY, TEST_PASSWORD, auth_header, future_slot, make_patient, make_practitioner

from medbook.domain.accounts.repository import AccountRepository
from medbook.models import ROLE_PATIENT, ROLE_PRACTITIONER, RegistrationKey


def register(client, name="Pat Patient", email="p@x.com", password=TEST_PASSWORD, key=None):
    body = {"name": name, "email": email, "password": password}
    if key is not None:
        body["doctor"] = key
    return client.post("/register", json=body)


def issue_key(client):
    response = client.post("/add/key", headers={"X-Admin-Key": ADMIN_KEY})
    assert response.status_code == 200
    return response.json()["key"]


# ============================================================================
# REGISTRATION
# ============================================================================


def test_register_creates_unverified_patient_and_mails_link(client, db, fakes):
    response = register(client)

    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    account = AccountRepository.get_by_account_id(db, data["accountId"])
    assert account.role == ROLE_PATIENT
    assert account.is_verified is False
    assert account.password_hash != TEST_PASSWORD

    mails = fakes.notifier.of_kind("verification")
    assert len(mails) == 1
    assert mails[0]["email"] == "p@x.com"
    assert mails[0]["verify_url"].startswith("http://api.test/verify/")


def test_register_normalizes_email(client, db):
    register(client, email="  Pat@X.com ")
    assert AccountRepository.get_by_email(db, "pat@x.com") is not None


def test_verify_link_marks_account_and_redirects(client, db, fakes):
    account_id = register(client).json()["accountId"]
    verify_url = fakes.notifier.of_kind("verification")[0]["verify_url"]
    path = verify_url.replace("http://api.test", "")

    response = client.get(path, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == "http://frontend.test/login#success"
    db.expire_all()
    assert AccountRepository.get_by_account_id(db, account_id).is_verified is True


def test_verify_with_garbage_token_is_rejected(client):
    assert client.get("/verify/not-a-token", follow_redirects=False).status_code == 400


def test_duplicate_email_is_a_conflict(client):
    register(client)
    response = register(client, name="Someone Else")
    assert response.status_code == 409


def test_short_password_is_rejected(client):
    assert register(client, password="123").status_code == 422


def test_invalid_email_is_rejected(client):
    assert register(client, email="not-an-email").status_code == 422


def test_registration_key_creates_practitioner_once(client, db):
    key = issue_key(client)

    response = register(client, name="Dr. Dana", email="d@x.com", key=key)

    assert response.status_code == 200
    account_id = response.json()["accountId"]
    assert AccountRepository.get_by_account_id(db, account_id).role == ROLE_PRACTITIONER
    assert db.query(RegistrationKey).filter(RegistrationKey.key == key).one().account_id == account_id

    reused = register(client, name="Dr. Other", email="o@x.com", key=key)
    assert reused.status_code == 400
    assert AccountRepository.get_by_email(db, "o@x.com") is None


def test_unknown_registration_key_is_rejected(client, db):
    assert register(client, email="d@x.com", key="999999").status_code == 400
    assert AccountRepository.get_by_email(db, "d@x.com") is None


def test_issuing_keys_requires_the_admin_key(client):
    assert client.post("/add/key").status_code == 401
    assert client.post("/add/key", headers={"X-Admin-Key": "wrong"}).status_code == 401


def test_issued_key_comes_with_a_register_url(client):
    data = client.post("/add/key", headers={"X-Admin-Key": ADMIN_KEY}).json()
    assert data["url"] == f"http://frontend.test/register#{data['key']}"


# ============================================================================
# LOGIN & PASSWORD RESET
# ============================================================================


def test_login_returns_token_and_role(client, db):
    practitioner = make_practitioner(db)

    response = client.post("/login", json={"email": "d@x.com", "password": TEST_PASSWORD})

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == practitioner.name
    assert data["role"] == ROLE_PRACTITIONER
    assert data["token"]


def test_login_with_wrong_password_is_unauthorized(client, db):
    make_patient(db)
    assert client.post("/login", json={"email": "p@x.com", "password": "wrong-password"}).status_code == 401
    assert client.post("/login", json={"email": "nobody@x.com", "password": TEST_PASSWORD}).status_code == 401


def test_password_reset_flow(client, db, fakes):
    make_patient(db)

    response = client.post("/forgotPassword", json={"email": "p@x.com"})
    assert response.status_code == 200

    reset_link = fakes.notifier.of_kind("password_reset")[0]["reset_link"]
    assert reset_link.startswith("http://frontend.test/resetPassword/")
    token = reset_link.rsplit("/", 1)[1]

    assert client.post(f"/resetPassword/{token}", json={"password": "brand-new-pass"}).status_code == 200
    assert client.post("/login", json={"email": "p@x.com", "password": "brand-new-pass"}).status_code == 200
    assert client.post("/login", json={"email": "p@x.com", "password": TEST_PASSWORD}).status_code == 401

    # Tokens are single use
    assert client.post(f"/resetPassword/{token}", json={"password": "another-pass"}).status_code == 400


def test_forgot_password_for_unknown_email_is_not_found(client, fakes):
    assert client.post("/forgotPassword", json={"email": "ghost@x.com"}).status_code == 404
    assert fakes.notifier.of_kind("password_reset") == []


def test_reset_with_unknown_token_is_rejected(client):
    assert client.post("/resetPassword/unknown", json={"password": "brand-new-pass"}).status_code == 400


# ============================================================================
# PROFILES
# ============================================================================


def test_practitioner_profile_is_public(client, db):
    practitioner = make_practitioner(db, language_options=["en", "lt"])

    response = client.get(f"/user/{practitioner.account_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["doctor"] is True
    assert data["rates"]["30"] == 20
    assert data["languageOptions"] == ["en", "lt"]


def test_patient_profile_is_private(client, db):
    patient = make_patient(db)
    stranger = make_patient(db, name="Stranger", email="s@x.com")

    assert client.get(f"/user/{patient.account_id}").status_code == 401
    assert client.get(f"/user/{patient.account_id}", headers=auth_header(stranger)).status_code == 401

    own = client.get(f"/user/{patient.account_id}", headers=auth_header(patient))
    assert own.status_code == 200
    assert own.json()["doctor"] is False


def test_user_without_id_returns_own_profile(client, db):
    patient = make_patient(db)

    assert client.get("/user").status_code == 401
    response = client.get("/user", headers=auth_header(patient))
    assert response.json()["userId"] == patient.account_id


def test_unknown_profile_is_not_found(client, db):
    assert client.get("/user/missing").status_code == 404


def test_practitioner_edit_merges_rates(client, db):
    practitioner = make_practitioner(db)

    response = client.put(
        "/edit",
        json={"rates": {"30": 25}, "workdayHours": {"from": 8, "to": 16}, "helpOptions": ["cardiology"]},
        headers=auth_header(practitioner),
    )

    assert response.status_code == 200
    db.expire_all()
    updated = AccountRepository.get_by_account_id(db, practitioner.account_id)
    assert updated.rates == {"15": 10, "30": 25, "45": 30, "60": 40}
    assert updated.workday_hours == {"from": 8, "to": 16}
    assert updated.help_options == ["cardiology"]


def test_patient_cannot_set_practitioner_fields(client, db):
    patient = make_patient(db)

    response = client.put("/edit", json={"rates": {"30": 25}}, headers=auth_header(patient))

    assert response.status_code == 400


def test_patient_can_edit_basic_fields(client, db):
    patient = make_patient(db)

    response = client.put("/edit", json={"name": "Patricia", "description": ""}, headers=auth_header(patient))

    assert response.status_code == 200
    db.expire_all()
    assert AccountRepository.get_by_account_id(db, patient.account_id).name == "Patricia"


def test_edit_rejects_unknown_buckets_and_bad_hours(client, db):
    practitioner = make_practitioner(db)
    headers = auth_header(practitioner)

    assert client.put("/edit", json={"rates": {"20": 5}}, headers=headers).status_code == 422
    assert client.put("/edit", json={"rates": {"30": -5}}, headers=headers).status_code == 422
    assert client.put("/edit", json={"workdayHours": {"from": 17, "to": 9}}, headers=headers).status_code == 422


def test_edit_requires_authentication(client):
    assert client.put("/edit", json={"name": "Nobody"}).status_code == 401


# ============================================================================
# BUSY INTERVALS
# ============================================================================


def test_practitioner_marks_busy_interval(client, db):
    practitioner = make_practitioner(db)
    start, end = future_slot(minutes=120)

    response = client.post(
        "/busy", json={"start": start.isoformat(), "end": end.isoformat()}, headers=auth_header(practitioner)
    )

    assert response.status_code == 200
    assert response.json() == {"status": "success"}
    busy = client.get(f"/appointments/{practitioner.account_id}").json()["busy"]
    assert busy == [{"start": start.isoformat() + "+00:00", "end": end.isoformat() + "+00:00"}]


def test_busy_interval_must_move_forward(client, db):
    practitioner = make_practitioner(db)
    start, end = future_slot()

    response = client.post(
        "/busy", json={"start": end.isoformat(), "end": start.isoformat()}, headers=auth_header(practitioner)
    )

    assert response.status_code == 400


def test_patients_cannot_mark_busy(client, db):
    patient = make_patient(db)
    start, end = future_slot()

    response = client.post("/busy", json={"start": start.isoformat(), "end": end.isoformat()}, headers=auth_header(patient))

    assert response.status_code == 401
