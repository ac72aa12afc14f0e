"""
End-to-end tests of ticket handling, comments and the dashboard.
"""
from unittest.mock import patch

import pytest

from conftest import create_user, csrf_token, login
from core.data_client import DataClientError
from core.database import SqlDataClient


def create_ticket(client, **fields):
    data = {
        "_token": csrf_token(client, "/tickets/create"),
        "title": "Printer jammed",
        "description": "Paper stuck in tray 2",
        "priority": "high",
        "category": "hardware",
    }
    data.update(fields)
    return client.post("/tickets", data=data)


@pytest.fixture
def ticket(logged_in, sql_client):
    create_ticket(logged_in)
    return sql_client.fetch_one("tickets", {"title": "Printer jammed"})


@pytest.fixture
def bob(app):
    create_user("bob@example.com", display_name="Bob")
    client = app.test_client()
    login(client, "bob@example.com")
    return client


@pytest.fixture
def admin(app):
    create_user("root@example.com", display_name="Root", role="admin")
    client = app.test_client()
    login(client, "root@example.com")
    return client


class TestCreate:

    def test_create_ticket(self, logged_in, sql_client, user):
        response = create_ticket(logged_in)

        ticket = sql_client.fetch_one("tickets", {"title": "Printer jammed"})
        assert response.headers["Location"].endswith(f"/tickets/{ticket['id']}")
        assert ticket["status"] == "open"
        assert ticket["priority"] == "high"
        assert ticket["user_email"] == "alice@example.com"
        assert ticket["created_by"] == user["id"]

        page = logged_in.get(f"/tickets/{ticket['id']}").get_data(as_text=True)
        assert "Ticket created successfully!" in page
        assert "Paper stuck in tray 2" in page

    def test_invalid_priority(self, logged_in, sql_client):
        response = create_ticket(logged_in, priority="critical")
        assert response.headers["Location"].endswith("/tickets/create")
        assert sql_client.count("tickets") == 0

        page = logged_in.get("/tickets/create").get_data(as_text=True)
        assert "Invalid priority level" in page
        assert 'value="Printer jammed"' in page

    def test_missing_title(self, logged_in):
        create_ticket(logged_in, title="   ")
        page = logged_in.get("/tickets/create").get_data(as_text=True)
        assert "Title is required" in page

    def test_markup_is_stored_escaped(self, logged_in, sql_client):
        create_ticket(logged_in, title="<script>alert(1)</script>")
        ticket = sql_client.fetch_one("tickets", {"user_email": "alice@example.com"})
        assert ticket["title"] == "&lt;script&gt;alert(1)&lt;/script&gt;"


class TestListing:

    def test_users_see_only_their_tickets(self, logged_in, bob):
        create_ticket(logged_in, title="Alice ticket")
        create_ticket(bob, title="Bob ticket")

        page = logged_in.get("/tickets").get_data(as_text=True)
        assert "Alice ticket" in page
        assert "Bob ticket" not in page

    def test_admin_sees_everything(self, logged_in, bob, admin):
        create_ticket(logged_in, title="Alice ticket")
        create_ticket(bob, title="Bob ticket")

        page = admin.get("/tickets").get_data(as_text=True)
        assert "Alice ticket" in page
        assert "Bob ticket" in page

    def test_filters(self, logged_in):
        create_ticket(logged_in, title="Urgent one", priority="urgent")
        create_ticket(logged_in, title="Low one", priority="low")

        page = logged_in.get("/tickets?priority=urgent&status=bogus").get_data(as_text=True)
        assert "Urgent one" in page
        assert "Low one" not in page

    def test_search(self, logged_in):
        create_ticket(logged_in, title="Printer jammed")
        create_ticket(logged_in, title="VPN down", description="The PRINTER queue is stuck as well")
        create_ticket(logged_in, title="Mouse broken", description="Left button")

        page = logged_in.get("/tickets?search=printer").get_data(as_text=True)
        assert "Printer jammed" in page
        assert "VPN down" in page
        assert "Mouse broken" not in page
        assert 'value="printer"' in page

    def test_search_is_kept_in_page_links(self, logged_in):
        create_ticket(logged_in, title="Printer jammed")
        create_ticket(logged_in, title="Printer offline")
        create_ticket(logged_in, title="Mouse broken", description="Left button")

        page = logged_in.get("/tickets?search=printer&per_page=1").get_data(as_text=True)
        assert "Page 1 of 2" in page
        assert "/tickets?search=printer&amp;page=2&amp;per_page=1" in page

    def test_search_only_covers_own_tickets(self, logged_in, bob):
        create_ticket(bob, title="Printer on floor 3")
        page = logged_in.get("/tickets?search=printer").get_data(as_text=True)
        assert "Printer on floor 3" not in page

    def test_pagination(self, logged_in):
        for i in range(3):
            create_ticket(logged_in, title=f"Ticket {i}")

        page = logged_in.get("/tickets?per_page=2&page=2").get_data(as_text=True)
        assert "Page 2 of 2" in page
        assert "3 ticket(s)" in page
        assert "Ticket 0" in page
        assert "Ticket 2" not in page


class TestViewAndEdit:

    def test_missing_ticket(self, logged_in):
        response = logged_in.get("/tickets/999")
        assert response.headers["Location"].endswith("/tickets")
        assert "Ticket not found." in logged_in.get("/tickets").get_data(as_text=True)

    def test_other_users_ticket_is_forbidden(self, ticket, bob):
        response = bob.get(f"/tickets/{ticket['id']}")
        assert response.headers["Location"].endswith("/tickets")
        assert "You do not have permission to view this ticket." in bob.get("/tickets").get_data(as_text=True)

    def test_edit_form_is_prefilled(self, logged_in, ticket):
        page = logged_in.get(f"/tickets/{ticket['id']}/edit").get_data(as_text=True)
        assert 'value="Printer jammed"' in page

    def test_resolving_sets_resolved_at_and_logs_change(self, logged_in, ticket, sql_client):
        data = {
            "_token": csrf_token(logged_in, f"/tickets/{ticket['id']}/edit"),
            "title": "Printer jammed",
            "description": "Fixed by removing the paper",
            "status": "resolved",
            "priority": "high",
            "category": "hardware",
        }
        response = logged_in.post(f"/tickets/{ticket['id']}/update", data=data)
        assert response.headers["Location"].endswith(f"/tickets/{ticket['id']}")

        updated = sql_client.fetch_one("tickets", {"id": ticket["id"]})
        assert updated["status"] == "resolved"
        assert updated["resolved_at"] is not None

        comments = sql_client.fetch_all("ticket_comments", {"ticket_id": ticket["id"]})
        assert [c["comment"] for c in comments] == ["Status changed from open to resolved"]

        data["status"] = "in_progress"
        logged_in.post(f"/tickets/{ticket['id']}/update", data=data)
        assert sql_client.fetch_one("tickets", {"id": ticket["id"]})["resolved_at"] is None

    def test_invalid_status(self, logged_in, ticket, sql_client):
        data = {
            "_token": csrf_token(logged_in, f"/tickets/{ticket['id']}/edit"),
            "title": "Printer jammed",
            "description": "x",
            "status": "done",
            "priority": "high",
            "category": "hardware",
        }
        response = logged_in.post(f"/tickets/{ticket['id']}/update", data=data)
        assert response.headers["Location"].endswith(f"/tickets/{ticket['id']}/edit")
        assert sql_client.fetch_one("tickets", {"id": ticket["id"]})["status"] == "open"


class TestDelete:

    def test_owner_deletes_ticket_and_comments(self, logged_in, ticket, sql_client):
        sql_client.insert("ticket_comments", {
            "ticket_id": ticket["id"], "user_email": "alice@example.com", "comment": "hello",
        })
        token = csrf_token(logged_in, f"/tickets/{ticket['id']}/edit")

        response = logged_in.post(f"/tickets/{ticket['id']}/delete", data={"_token": token})

        assert response.headers["Location"].endswith("/tickets")
        assert sql_client.fetch_one("tickets", {"id": ticket["id"]}) is None
        assert sql_client.count("ticket_comments") == 0
        page = logged_in.get("/tickets").get_data(as_text=True)
        assert f"Ticket #{ticket['id']} deleted successfully!" in page

    def test_failed_delete_keeps_comments(self, logged_in, ticket, sql_client):
        sql_client.insert("ticket_comments", {
            "ticket_id": ticket["id"], "user_email": "alice@example.com", "comment": "hello",
        })
        token = csrf_token(logged_in, f"/tickets/{ticket['id']}/edit")
        original_delete = SqlDataClient.delete

        def delete(client, table, filters):
            if table == "tickets":
                raise DataClientError("Could not delete from tickets")
            return original_delete(client, table, filters)

        with patch.object(SqlDataClient, "delete", autospec=True, side_effect=delete):
            logged_in.post(f"/tickets/{ticket['id']}/delete", data={"_token": token})

        assert sql_client.fetch_one("tickets", {"id": ticket["id"]}) is not None
        assert sql_client.count("ticket_comments", {"ticket_id": ticket["id"]}) == 1
        page = logged_in.get("/tickets").get_data(as_text=True)
        assert "Could not delete the ticket. Please try again." in page

    def test_other_user_cannot_delete(self, ticket, bob, sql_client):
        token = csrf_token(bob, "/tickets/create")
        bob.post(f"/tickets/{ticket['id']}/delete", data={"_token": token})
        assert sql_client.fetch_one("tickets", {"id": ticket["id"]}) is not None


class TestComments:

    def post_comment(self, client, ticket, text, internal=False):
        data = {"_token": csrf_token(client, "/tickets/create"), "comment": text}
        if internal:
            data["is_internal"] = "y"
        with patch("routes.ticket.socketio") as socketio:
            response = client.post(f"/tickets/{ticket['id']}/comments", data=data)
        return response, socketio

    def test_add_comment_notifies_listeners(self, logged_in, ticket, sql_client):
        response, socketio = self.post_comment(logged_in, ticket, "Still broken")

        assert response.headers["Location"].endswith(f"/tickets/{ticket['id']}")
        comment = sql_client.fetch_one("ticket_comments", {"ticket_id": ticket["id"]})
        assert comment["comment"] == "Still broken"
        assert comment["author_name"] == "Alice"
        assert sql_client.fetch_one("tickets", {"id": ticket["id"]})["updated_at"] is not None

        event, payload = socketio.emit.call_args.args
        assert event == "new_comment"
        assert payload["ticket_id"] == ticket["id"]
        assert payload["comment_id"] == comment["id"]

    def test_empty_comment(self, logged_in, ticket, sql_client):
        response, socketio = self.post_comment(logged_in, ticket, "  ")
        assert sql_client.count("ticket_comments") == 0
        socketio.emit.assert_not_called()

    def test_internal_comments_hidden_from_owner(self, logged_in, ticket, admin):
        self.post_comment(admin, ticket, "Vendor contract expired", internal=True)
        self.post_comment(admin, ticket, "Technician is on the way")

        owner_page = logged_in.get(f"/tickets/{ticket['id']}").get_data(as_text=True)
        assert "Technician is on the way" in owner_page
        assert "Vendor contract expired" not in owner_page

        admin_page = admin.get(f"/tickets/{ticket['id']}").get_data(as_text=True)
        assert "Vendor contract expired" in admin_page


class TestDashboard:

    def test_stats(self, logged_in, bob):
        create_ticket(logged_in, priority="urgent")
        create_ticket(logged_in, priority="low")
        create_ticket(bob)

        page = logged_in.get("/dashboard").get_data(as_text=True)
        assert '<div class="fs-3 fw-bold" data-stat="total_tickets">2</div>' in page
        assert '<div class="fs-3 fw-bold" data-stat="open_tickets">2</div>' in page
        assert '<div class="fs-3 fw-bold" data-stat="high_priority_tickets">1</div>' in page

    def test_chart_data(self, logged_in):
        create_ticket(logged_in, priority="urgent")
        create_ticket(logged_in, priority="low")

        status = logged_in.get("/dashboard/chart-data?type=status").get_json()
        assert status == {"labels": ["open", "in_progress", "resolved", "closed"], "data": [2, 0, 0, 0]}

        priority = logged_in.get("/dashboard/chart-data?type=priority").get_json()
        assert priority["data"] == [1, 0, 0, 1]

    def test_unknown_chart_type(self, logged_in):
        response = logged_in.get("/dashboard/chart-data?type=owner")
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_chart_data_requires_login(self, client):
        assert client.get("/dashboard/chart-data").status_code == 302


class TestProfile:

    def test_update_display_name(self, logged_in, sql_client, user):
        token = csrf_token(logged_in, "/profile")
        response = logged_in.post("/profile", data={"_token": token, "display_name": "Alicia"})

        assert response.headers["Location"].endswith("/profile")
        assert sql_client.fetch_one("users", {"id": int(user["id"])})["display_name"] == "Alicia"
        page = logged_in.get("/profile").get_data(as_text=True)
        assert "Profile updated successfully!" in page
        assert "Alicia" in page

    def test_password_change_needs_current_password(self, logged_in):
        token = csrf_token(logged_in, "/profile")
        logged_in.post("/profile", data={
            "_token": token,
            "display_name": "Alice",
            "current_password": "Wrong1234",
            "new_password": "NewSecret1",
            "confirm_password": "NewSecret1",
        })
        page = logged_in.get("/profile").get_data(as_text=True)
        assert "Current password is incorrect" in page

    def test_password_change(self, logged_in, sql_client):
        token = csrf_token(logged_in, "/profile")
        logged_in.post("/profile", data={
            "_token": token,
            "display_name": "Alice",
            "current_password": "Secret123",
            "new_password": "NewSecret1",
            "confirm_password": "NewSecret1",
        })
        assert sql_client.sign_in("alice@example.com", "NewSecret1") is not None
