import json

from sqlmodel import select

from models import Donation, DonationStatus, Identity, Profile, Role


def test_signup_json_signs_in_with_role(client, session):
    resp = client.post(
        "/signup",
        json={
            "email": "new@fooddrop.org",
            "password": "secret123",
            "confirm_password": "secret123",
            "username": "Newbie",
            "role": "volunteer",
        },
    )

    assert resp.status_code == 201
    assert resp.json()["role"] == "volunteer"
    assert "session" in resp.cookies

    me = client.get("/me").json()
    assert me["email"] == "new@fooddrop.org"
    assert me["role"] == "volunteer"
    assert me["profile"]["username"] == "Newbie"
    assert me["profile"]["is_admin"] is False


def test_signup_form_redirects_to_dashboard(client):
    resp = client.post(
        "/signup",
        data={
            "email": "form@fooddrop.org",
            "password": "secret123",
            "confirm_password": "secret123",
            "role": "donor",
        },
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/donor"


def test_signup_form_shows_mismatched_passwords(client, session):
    resp = client.post(
        "/signup",
        data={
            "email": "oops@fooddrop.org",
            "password": "secret123",
            "confirm_password": "secret456",
            "role": "donor",
        },
    )

    assert resp.status_code == 400
    assert "Passwords don&#39;t match" in resp.text
    assert session.exec(select(Identity)).all() == []


def test_login_json_errors(client, make_user):
    make_user("donor@fooddrop.org", Role.donor)

    resp = client.post(
        "/login",
        json={"email": "donor@fooddrop.org", "password": "nope-nope", "role": "donor"},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid email or password"


def test_login_form_picks_role(client, make_user, session):
    user = make_user("both@fooddrop.org", Role.donor)

    resp = client.post(
        "/login",
        data={"email": "both@fooddrop.org", "password": "secret123", "role": "volunteer"},
        follow_redirects=False,
    )

    assert resp.status_code == 303
    assert resp.headers["location"] == "/volunteer"
    session.refresh(user)
    assert user.role == Role.volunteer


def test_auth_pages_redirect_signed_in_users(client, make_user, login):
    login(make_user("donor@fooddrop.org", Role.donor))

    for path in ("/login", "/signup"):
        resp = client.get(path, follow_redirects=False)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/donor"


def test_dashboard_gating(client, make_user, login):
    resp = client.get("/donor", follow_redirects=False)
    assert resp.headers["location"] == "/login"

    login(make_user("donor@fooddrop.org", Role.donor))
    resp = client.get("/volunteer", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/"

    resp = client.get("/donor")
    assert resp.status_code == 200
    assert "Donor dashboard" in resp.text


def test_public_pages(client):
    assert client.get("/").status_code == 200
    assert client.get("/about").status_code == 200
    assert client.get("/login").status_code == 200


def test_admin_page_denied_then_allowed(client, make_user, login, session):
    resp = client.get("/admin")
    assert resp.status_code == 403
    assert "Access denied" in resp.text

    user = make_user("boss@fooddrop.org", Role.donor)
    login(user)
    assert client.get("/admin").status_code == 403

    profile = session.get(Profile, user.id)
    profile.is_admin = True
    session.add(profile)
    session.commit()

    resp = client.get("/admin")
    assert resp.status_code == 200
    assert "Admin dashboard" in resp.text


def test_donation_flow_over_api(client, make_user, login, donation_fields, feed):
    donor = make_user("donor@fooddrop.org", Role.donor)
    v1 = make_user("v1@fooddrop.org", Role.volunteer)
    v2 = make_user("v2@fooddrop.org", Role.volunteer)

    login(donor)
    resp = client.post("/donations/", json=donation_fields)
    assert resp.status_code == 201
    created = resp.json()
    assert created["status"] == "pending"
    assert created["volunteer_id"] is None
    assert created["donor_id"] == donor.id

    resp = client.post(f"/donations/{created['id']}/accept")
    assert resp.status_code == 403

    login(v1)
    resp = client.post(f"/donations/{created['id']}/accept")
    assert resp.status_code == 200
    assert resp.json()["volunteer_id"] == v1.id

    login(v2)
    resp = client.post(f"/donations/{created['id']}/accept")
    assert resp.status_code == 409
    resp = client.post(f"/donations/{created['id']}/complete")
    assert resp.status_code == 403

    login(v1)
    resp = client.post(f"/donations/{created['id']}/complete")
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"

    assert [e.type for e in feed.events] == ["INSERT", "UPDATE", "UPDATE"]


def test_listing_requires_login_and_filters(client, make_user, login, donation_fields):
    assert client.get("/donations/").status_code == 401

    donor = make_user("donor@fooddrop.org", Role.donor)
    login(donor)
    first = client.post("/donations/", json=donation_fields).json()
    client.post("/donations/", json={**donation_fields, "food_name": "Soup"})
    client.post(f"/donations/{first['id']}/cancel")

    pending = client.get("/donations/", params={"status": "pending"}).json()
    assert [d["food_name"] for d in pending] == ["Soup"]

    mine = client.get("/donations/", params={"donor_id": donor.id}).json()
    assert len(mine) == 2


def test_create_validation_and_role(client, make_user, login, donation_fields):
    login(make_user("v@fooddrop.org", Role.volunteer))
    assert client.post("/donations/", json=donation_fields).status_code == 403

    login(make_user("d@fooddrop.org", Role.donor))
    resp = client.post("/donations/", json={**donation_fields, "location": ""})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Location is required"


def test_multipart_create_with_image(client, make_user, login, donation_fields, storage, session):
    donor = make_user("donor@fooddrop.org", Role.donor)
    login(donor)

    resp = client.post(
        "/donations/",
        data=donation_fields,
        files={"image": ("bread.png", b"\x89PNG data", "image/png")},
    )
    assert resp.status_code == 201
    assert resp.json()["image_url"].startswith(f"/uploads/{donor.id}/")

    resp = client.post(
        "/donations/",
        data=donation_fields,
        files={"image": ("notes.txt", b"plain", "text/plain")},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please upload an image file"
    assert len(session.exec(select(Donation)).all()) == 1


def test_admin_moderation(client, make_user, login, donation_fields):
    donor = make_user("donor@fooddrop.org", Role.donor)
    admin = make_user("admin@fooddrop.org", None, is_admin=True)

    login(donor)
    donation = client.post("/donations/", json=donation_fields).json()
    assert client.patch(f"/donations/{donation['id']}/status", json={"status": "cancelled"}).status_code == 403

    login(admin)
    for _ in range(2):
        resp = client.patch(f"/donations/{donation['id']}/status", json={"status": "completed"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

    resp = client.patch(f"/donations/{donation['id']}/status", json={"status": "cancelled"})
    assert resp.json()["status"] == "cancelled"

    assert client.patch(f"/donations/{donation['id']}/status", json={"status": "lost"}).status_code == 422

    assert client.delete(f"/donations/{donation['id']}").status_code == 204
    assert client.get(f"/donations/{donation['id']}").status_code == 404


def test_users_endpoints(client, make_user, login):
    admin = make_user("admin@fooddrop.org", None, is_admin=True)
    user = make_user("u@fooddrop.org", Role.donor)

    login(user)
    assert client.get("/users/").status_code == 403
    resp = client.patch("/users/me", json={"username": "Uma"})
    assert resp.json()["username"] == "Uma"
    assert client.patch(f"/users/{user.id}/admin", json={"is_admin": True}).status_code == 403

    login(admin)
    assert len(client.get("/users/").json()) == 2
    resp = client.patch(f"/users/{user.id}/admin", json={"is_admin": True})
    assert resp.json()["is_admin"] is True


def test_role_can_be_chosen_before_login(client):
    resp = client.post("/role", json={"role": "volunteer"})

    assert resp.status_code == 200
    assert resp.json() == {"role": "volunteer", "authenticated": False}
    assert client.get("/me").status_code == 401


def test_ui_donate_form_errors_and_success(client, make_user, login, donation_fields):
    login(make_user("donor@fooddrop.org", Role.donor))

    resp = client.post("/ui/donor/donations", data={**donation_fields, "food_name": ""})
    assert resp.status_code == 400
    assert "Food name is required" in resp.text

    resp = client.post("/ui/donor/donations", data=donation_fields)
    assert resp.status_code == 200
    assert "Donation submitted!" in resp.text
    assert json.loads(resp.headers["HX-Trigger"])["donations-refresh"] is True

    resp = client.get("/ui/donor/donations")
    assert "Bread" in resp.text


def test_ui_volunteer_accept_conflict(client, make_user, login, donation_fields, session):
    donor = make_user("donor@fooddrop.org", Role.donor)
    v1 = make_user("v1@fooddrop.org", Role.volunteer)
    v2 = make_user("v2@fooddrop.org", Role.volunteer)

    login(donor)
    donation_id = client.post("/donations/", json=donation_fields).json()["id"]

    login(v1)
    resp = client.post(f"/ui/volunteer/donations/{donation_id}/accept")
    assert resp.status_code == 200
    assert "Donation accepted" in resp.text

    login(v2)
    resp = client.post(f"/ui/volunteer/donations/{donation_id}/accept")
    assert resp.status_code == 409
    assert "Donation is accepted" in resp.text
    assert "HX-Trigger" not in resp.headers

    assert session.get(Donation, donation_id).status == DonationStatus.accepted


def test_ui_admin_panels(client, make_user, login, donation_fields):
    donor = make_user("donor@fooddrop.org", Role.donor, username="Dora")
    admin = make_user("admin@fooddrop.org", None, is_admin=True)

    login(donor)
    donation_id = client.post("/donations/", json=donation_fields).json()["id"]

    login(admin)
    resp = client.post(f"/ui/admin/donations/{donation_id}/status", data={"status": "cancelled"})
    assert "Donation status updated to cancelled." in resp.text

    resp = client.get("/ui/admin/users")
    assert "Dora" in resp.text

    resp = client.post(f"/ui/admin/users/{donor.id}/admin", data={"is_admin": "true"})
    assert "updated successfully" in resp.text

    resp = client.post(f"/ui/admin/donations/{donation_id}/delete")
    assert "Donation deleted." in resp.text


def test_profile_page_and_update(client, make_user, login):
    assert client.get("/profile", follow_redirects=False).headers["location"] == "/login"

    login(make_user("me@fooddrop.org", Role.donor, username="Old"))
    resp = client.get("/profile")
    assert resp.status_code == 200
    assert "Old" in resp.text

    resp = client.post("/ui/profile", data={"username": " "})
    assert resp.status_code == 400
    assert "Please enter a valid username" in resp.text

    resp = client.post("/ui/profile", data={"username": "New"})
    assert "successfully updated" in resp.text


def test_uploaded_html_is_stored_as_declared_image(client, make_user, login, donation_fields):
    login(make_user("donor@fooddrop.org", Role.donor))

    resp = client.post(
        "/donations/",
        data=donation_fields,
        files={"image": ("x.html", b"<script>alert(1)</script>", "image/png")},
    )

    assert resp.status_code == 201
    assert resp.json()["image_url"].endswith(".png")


def test_malformed_json_is_a_bad_request(client, make_user, login, session):
    login(make_user("donor@fooddrop.org", Role.donor))

    resp = client.post(
        "/donations/",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Malformed JSON body"
    assert session.exec(select(Donation)).all() == []
