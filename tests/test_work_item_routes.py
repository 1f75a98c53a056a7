"""
Route tests for tickets and tasks
"""
from datetime import date
from decimal import Decimal

from crm.extensions import db
from crm.models import AuditLog, Profile, Service, Task, Ticket


def ticket_form(**overrides):
    data = {"title": "Printer broken", "description": "Paper jam", "priority": "high", "category": "hardware"}
    data.update(overrides)
    return data


def add_ticket(app, number, title, client_id=None, status="open"):
    with app.app_context():
        ticket = Ticket(ticket_number=number, title=title, client_id=client_id, status=status)
        db.session.add(ticket)
        db.session.commit()
        return ticket.id


def add_task(app, title, client_id=None, **extra):
    with app.app_context():
        task = Task(title=title, client_id=client_id, **extra)
        db.session.add(task)
        db.session.commit()
        return task.id


class TestTicketCreate:
    def test_worker_creates_numbered_ticket(self, app, client, login, users):
        login("worker")
        response = client.post("/tickets/new", data=ticket_form(client_id=users["client"], assigned_worker_id=users["worker"]))
        assert response.status_code == 302

        with app.app_context():
            ticket = Ticket.query.one()
            assert ticket.ticket_number == f"TKT-{date.today().year}-0001"
            assert ticket.status == "open"
            assert ticket.priority == "high"
            assert ticket.client_id == users["client"]
            assert AuditLog.query.filter_by(entity_type="Ticket", action="CREATE").count() == 1

    def test_numbers_increase(self, app, client, login):
        login("admin")
        client.post("/tickets/new", data=ticket_form())
        client.post("/tickets/new", data=ticket_form(title="Second"))

        with app.app_context():
            numbers = sorted(t.ticket_number for t in Ticket.query.all())
            assert numbers[-1].endswith("-0002")

    def test_title_required(self, app, client, login):
        login("worker")
        response = client.post("/tickets/new", data=ticket_form(title=""))
        assert response.status_code == 400
        with app.app_context():
            assert Ticket.query.count() == 0

    def test_forged_client_id_rejected(self, app, client, login, users):
        login("worker")
        # a worker is not a valid ticket client
        response = client.post("/tickets/new", data=ticket_form(client_id=users["worker"]))
        assert response.status_code == 400

    def test_client_cannot_open_form(self, client, login):
        login("client")
        assert client.get("/tickets/new").status_code == 403


class TestTicketStatus:
    def test_close_and_reopen(self, app, client, login):
        ticket_id = add_ticket(app, "TKT-2026-0001", "Broken")
        login("worker")

        client.post(f"/tickets/{ticket_id}/status", data={"status": "closed"})
        with app.app_context():
            ticket = db.session.get(Ticket, ticket_id)
            assert ticket.status == "closed"
            assert ticket.closed_at is not None

        client.post(f"/tickets/{ticket_id}/status", data={"status": "open"})
        with app.app_context():
            ticket = db.session.get(Ticket, ticket_id)
            assert ticket.status == "open"
            assert ticket.closed_at is None

    def test_unknown_status_ignored(self, app, client, login):
        ticket_id = add_ticket(app, "TKT-2026-0001", "Broken")
        login("worker")
        client.post(f"/tickets/{ticket_id}/status", data={"status": "exploded"})
        with app.app_context():
            assert db.session.get(Ticket, ticket_id).status == "open"

    def test_edit_closes_ticket(self, app, client, login):
        ticket_id = add_ticket(app, "TKT-2026-0001", "Broken")
        login("admin")
        response = client.post(f"/tickets/{ticket_id}/edit", data=ticket_form(status="closed", hours_worked="1,5"))
        assert response.status_code == 302
        with app.app_context():
            ticket = db.session.get(Ticket, ticket_id)
            assert ticket.closed_at is not None
            assert ticket.hours_worked == Decimal("1.5")


class TestTicketVisibility:
    def test_client_lists_only_own(self, app, client, login, users):
        add_ticket(app, "TKT-2026-0001", "Mine", client_id=users["client"])
        add_ticket(app, "TKT-2026-0002", "Theirs", client_id=users["other_client"])
        login("client")

        html = client.get("/tickets/").get_data(as_text=True)
        assert "Mine" in html
        assert "Theirs" not in html

    def test_client_cannot_view_other_ticket(self, app, client, login, users):
        ticket_id = add_ticket(app, "TKT-2026-0002", "Theirs", client_id=users["other_client"])
        login("client")
        assert client.get(f"/tickets/{ticket_id}").status_code == 403

    def test_search_and_filters(self, app, client, login):
        add_ticket(app, "TKT-2026-0001", "VPN outage")
        add_ticket(app, "TKT-2026-0002", "Printer jam", status="closed")
        login("worker")

        html = client.get("/tickets/?q=vpn").get_data(as_text=True)
        assert "VPN outage" in html
        assert "Printer jam" not in html

        html = client.get("/tickets/?status=closed").get_data(as_text=True)
        assert "Printer jam" in html
        assert "VPN outage" not in html

        html = client.get("/tickets/?q=0002").get_data(as_text=True)
        assert "Printer jam" in html


class TestTasks:
    def test_create_task_with_progress(self, app, client, login, users):
        login("worker")
        response = client.post(
            "/tasks/new",
            data={"title": "Install router", "progress": "40", "status": "in_progress", "client_id": users["client"],
                  "due_date": "2026-07-01", "is_billable": "1"},
        )
        assert response.status_code == 302

        with app.app_context():
            task = Task.query.one()
            assert task.progress == 40
            assert task.status == "in_progress"
            assert task.due_date == date(2026, 7, 1)
            assert task.is_billable is True

    def test_invalid_progress_rejected(self, app, client, login):
        login("worker")
        response = client.post("/tasks/new", data={"title": "Bad", "progress": "150"})
        assert response.status_code == 400
        with app.app_context():
            assert Task.query.count() == 0

    def test_completing_sets_completed_at(self, app, client, login):
        task_id = add_task(app, "Cable office")
        login("worker")
        client.post(f"/tasks/{task_id}/status", data={"status": "completed"})

        with app.app_context():
            task = db.session.get(Task, task_id)
            assert task.status == "completed"
            assert task.completed_at is not None

    def test_search_by_client_name(self, app, client, login, users):
        add_task(app, "For Cleo", client_id=users["client"])
        add_task(app, "For Oscar", client_id=users["other_client"])
        login("admin")

        html = client.get("/tasks/?q=cleo").get_data(as_text=True)
        assert "For Cleo" in html
        assert "For Oscar" not in html

    def test_client_sees_only_own_tasks(self, app, client, login, users):
        add_task(app, "Visible task", client_id=users["client"])
        hidden_id = add_task(app, "Hidden task", client_id=users["other_client"])
        login("client")

        html = client.get("/tasks/").get_data(as_text=True)
        assert "Visible task" in html
        assert "Hidden task" not in html
        assert client.get(f"/tasks/{hidden_id}").status_code == 403


def deactivate(app, model, record_id):
    with app.app_context():
        db.session.get(model, record_id).is_active = False
        db.session.commit()


class TestDeactivatedLinks:
    """Editing a record keeps links to profiles and services deactivated since."""

    def test_ticket_resave_keeps_client_worker_and_service(self, app, client, login, users):
        with app.app_context():
            service = Service(name="Legacy support", price=Decimal("20"), service_type="hourly")
            db.session.add(service)
            db.session.commit()
            service_id = service.id
            ticket = Ticket(ticket_number="TKT-2026-0001", title="Broken", client_id=users["client"],
                            assigned_worker_id=users["worker"], service_id=service_id)
            db.session.add(ticket)
            db.session.commit()
            ticket_id = ticket.id

        deactivate(app, Profile, users["client"])
        deactivate(app, Profile, users["worker"])
        deactivate(app, Service, service_id)
        login("admin")

        html = client.get(f"/tickets/{ticket_id}/edit").get_data(as_text=True)
        assert f'value="{users["client"]}" selected' in html
        assert f'value="{users["worker"]}" selected' in html
        assert "Legacy support" in html

        response = client.post(
            f"/tickets/{ticket_id}/edit",
            data=ticket_form(client_id=users["client"], assigned_worker_id=users["worker"], service_id=service_id),
        )
        assert response.status_code == 302

        with app.app_context():
            ticket = db.session.get(Ticket, ticket_id)
            assert ticket.client_id == users["client"]
            assert ticket.assigned_worker_id == users["worker"]
            assert ticket.service_id == service_id

    def test_task_resave_keeps_client(self, app, client, login, users):
        task_id = add_task(app, "Rack servers", client_id=users["client"])
        deactivate(app, Profile, users["client"])
        login("admin")

        html = client.get(f"/tasks/{task_id}/edit").get_data(as_text=True)
        assert f'value="{users["client"]}" selected' in html

        client.post(f"/tasks/{task_id}/edit", data={"title": "Rack servers", "client_id": users["client"], "status": "pending"})
        with app.app_context():
            assert db.session.get(Task, task_id).client_id == users["client"]

    def test_new_ticket_cannot_use_inactive_client(self, app, client, login, users):
        deactivate(app, Profile, users["client"])
        login("worker")
        response = client.post("/tickets/new", data=ticket_form(client_id=users["client"]))
        assert response.status_code == 400
