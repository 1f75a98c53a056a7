"""
Route tests for wiki, chat, settings and the dashboard page
"""
from datetime import datetime, timedelta
from decimal import Decimal

from crm.extensions import db
from crm.models import AppSetting, AuditLog, ChatMessage, Invoice, Profile, WikiArticle
from crm.settings_store import GROUP_COMPANY, GROUP_INVOICE, GROUP_NOTIFICATIONS, load_settings


def add_article(app, title, published=True, category="howto"):
    with app.app_context():
        article = WikiArticle(title=title, content=f"{title} body", category=category, is_published=published)
        db.session.add(article)
        db.session.commit()
        return article.id


def add_message(app, sender_id, text, receiver_id=None, minutes=0):
    with app.app_context():
        message = ChatMessage(
            sender_id=sender_id,
            receiver_id=receiver_id,
            message=text,
            is_group_message=receiver_id is None,
            created_at=datetime(2026, 1, 1, 12, 0) + timedelta(minutes=minutes),
        )
        db.session.add(message)
        db.session.commit()
        return message.id


class TestWiki:
    def test_worker_creates_article_as_author(self, app, client, login, users):
        login("worker")
        response = client.post(
            "/wiki/new",
            data={"title": "Reset router", "content": "Hold the button", "category": "network", "is_published": "1"},
        )
        assert response.status_code == 302

        with app.app_context():
            article = WikiArticle.query.one()
            assert article.author_id == users["worker"]
            assert article.is_published is True

    def test_content_required(self, client, login):
        login("worker")
        assert client.post("/wiki/new", data={"title": "Empty"}).status_code == 400

    def test_client_sees_published_only(self, app, client, login):
        add_article(app, "Public guide")
        draft_id = add_article(app, "Internal draft", published=False)
        login("client")

        html = client.get("/wiki/").get_data(as_text=True)
        assert "Public guide" in html
        assert "Internal draft" not in html
        assert client.get(f"/wiki/{draft_id}").status_code == 403

    def test_search_and_category(self, app, client, login):
        add_article(app, "VPN setup", category="network")
        add_article(app, "Invoice howto", category="billing")
        login("worker")

        html = client.get("/wiki/?q=vpn").get_data(as_text=True)
        assert "VPN setup" in html
        assert "Invoice howto" not in html

        html = client.get("/wiki/?category=billing").get_data(as_text=True)
        assert "Invoice howto" in html
        assert "VPN setup" not in html


class TestChat:
    def test_private_message(self, app, client, login, users):
        login("worker")
        response = client.post("/chat/send", data={"message": "Hello Cleo", "receiver_id": users["client"]})
        assert response.status_code == 302

        with app.app_context():
            message = ChatMessage.query.one()
            assert message.sender_id == users["worker"]
            assert message.receiver_id == users["client"]
            assert message.is_group_message is False

    def test_group_message(self, app, client, login):
        login("client")
        client.post("/chat/send", data={"message": "Hi all", "is_group_message": "1", "receiver_id": "5"})

        with app.app_context():
            message = ChatMessage.query.one()
            assert message.receiver_id is None
            assert message.is_group_message is True

    def test_blank_message_rejected(self, app, client, login, users):
        login("worker")
        client.post("/chat/send", data={"message": "   ", "receiver_id": users["client"]})
        with app.app_context():
            assert ChatMessage.query.count() == 0

    def test_private_requires_valid_receiver(self, app, client, login, users):
        with app.app_context():
            db.session.get(Profile, users["other_client"]).is_active = False
            db.session.commit()

        login("worker")
        client.post("/chat/send", data={"message": "x"})
        client.post("/chat/send", data={"message": "x", "receiver_id": users["worker"]})
        client.post("/chat/send", data={"message": "x", "receiver_id": users["other_client"]})
        with app.app_context():
            assert ChatMessage.query.count() == 0

    def test_views(self, app, client, login, users):
        w, c, o = users["worker"], users["client"], users["other_client"]
        add_message(app, w, "w->c", receiver_id=c, minutes=1)
        add_message(app, c, "c->w", receiver_id=w, minutes=2)
        add_message(app, o, "o->w", receiver_id=w, minutes=3)
        add_message(app, o, "group hello", minutes=4)
        add_message(app, o, "o->c", receiver_id=c, minutes=5)
        login("worker")

        def texts(query=""):
            data = client.get(f"/chat/messages.json{query}").get_json()
            return [m["message"] for m in data["messages"]]

        assert texts(f"?receiver_id={c}") == ["w->c", "c->w"]
        assert texts("?group=1") == ["group hello"]
        assert texts() == ["w->c", "c->w", "o->w", "group hello"]

    def test_page_renders_conversation(self, app, client, login, users):
        add_message(app, users["client"], "Need help", receiver_id=users["worker"])
        login("worker")
        html = client.get(f"/chat/?receiver_id={users['client']}").get_data(as_text=True)
        assert "Need help" in html


class TestSettings:
    def test_admin_only(self, client, login):
        login("worker")
        assert client.get("/settings/").status_code == 403
        assert client.post("/settings/groups/company", data={"company_name": "X"}).status_code == 403

    def test_save_group(self, app, client, login):
        login("admin")
        response = client.post("/settings/groups/company", data={"company_name": "Acme Servis d.o.o.", "city": "Mostar"})
        assert response.status_code == 302

        with app.app_context():
            settings = load_settings(GROUP_COMPANY)
            assert settings["company_name"] == "Acme Servis d.o.o."
            assert settings["city"] == "Mostar"
            row = AppSetting.query.filter_by(key=GROUP_COMPANY).one()
            assert AuditLog.query.filter_by(entity_type="AppSetting", entity_id=row.id).count() == 1

    def test_checkboxes(self, app, client, login):
        login("admin")
        client.post("/settings/groups/notifications", data={"daily_summary": "1"})
        with app.app_context():
            settings = load_settings(GROUP_NOTIFICATIONS)
            assert settings["daily_summary"] is True
            assert settings["task_reminders"] is False

    def test_invalid_number_not_saved(self, app, client, login):
        login("admin")
        client.post("/settings/groups/invoice", data={"payment_terms": "thirty"})
        with app.app_context():
            assert AppSetting.query.count() == 0

    def test_out_of_range_tax_rate_not_saved(self, app, client, login):
        login("admin")
        response = client.post("/settings/groups/invoice", data={"default_tax_rate": "150"})
        assert response.status_code == 302
        with app.app_context():
            assert AppSetting.query.count() == 0
            assert load_settings(GROUP_INVOICE)["default_tax_rate"] == 17

    def test_unknown_group(self, client, login):
        login("admin")
        response = client.post("/settings/groups/secrets", data={"x": "1"})
        assert response.status_code == 302

    def test_page_lists_groups(self, client, login):
        login("admin")
        html = client.get("/settings/").get_data(as_text=True)
        assert "Invoices &amp; fiscalization" in html
        assert 'name="payment_terms"' in html

    def test_preferences_theme(self, app, client, login, users):
        login("client")
        client.post("/settings/preferences", data={"theme": "dark"})
        with app.app_context():
            assert db.session.get(Profile, users["client"]).theme == "dark"

        client.post("/settings/preferences", data={"theme": "neon"})
        with app.app_context():
            assert db.session.get(Profile, users["client"]).theme == "dark"


class TestDashboardPage:
    def test_client_dashboard_covers_own_data(self, app, client, login, users):
        with app.app_context():
            for number, owner, total in (("INV-2026-0001", users["client"], "100"), ("INV-2026-0002", users["other_client"], "900")):
                invoice = Invoice(invoice_number=number, client_id=owner, subtotal=Decimal(total), tax_rate=Decimal("0"),
                                  status="paid", paid_at=datetime.utcnow())
                invoice.recalc_totals()
                db.session.add(invoice)
            db.session.commit()

        login("client")
        html = client.get("/dashboard/").get_data(as_text=True)
        assert "100.00 BAM" in html
        assert "1,000.00" not in html
        assert "900.00" not in html

    def test_admin_dashboard(self, client, login):
        login("admin")
        response = client.get("/dashboard/")
        assert response.status_code == 200
        assert b"Recent activity" in response.data
