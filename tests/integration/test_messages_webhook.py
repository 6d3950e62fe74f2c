"""
Integration tests for the Teams messaging webhook, sign-in callback and audit endpoints.
"""
from entra_integrations.entra_auth_client import encode_state
from tests.conftest import create_activity, IT_CHAT, HR_CHAT


class TestMessagesWebhook:
    """Test the full flow from inbound activity to chat reply."""

    def test_plain_message_gets_help(self, test_client, teams_client):
        response = test_client.post("/api/messages", json=create_activity(text="hello bot"))

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "help"
        assert "!unlock-user <username>" in body["response"]
        assert teams_client.sent[0]["conversation_id"] == IT_CHAT
        assert teams_client.sent[0]["service_url"] == "https://smba.trafficmanager.net/amer/"

    def test_member_added_gets_welcome(self, test_client, teams_client):
        activity = create_activity(text=None, activity_type="conversationUpdate")
        activity["membersAdded"] = [{"id": "29:new-person", "name": "New Person"}]

        response = test_client.post("/api/messages", json=activity)

        assert response.json()["status"] == "welcomed"
        assert "Welcome to AD Commands Bot" in teams_client.sent[0]["text"]

    def test_bot_added_is_ignored(self, test_client, teams_client):
        activity = create_activity(text=None, activity_type="conversationUpdate")
        activity["membersAdded"] = [{"id": "28:bot"}]

        assert test_client.post("/api/messages", json=activity).json() == {"status": "ignored"}
        assert teams_client.sent == []

    def test_unauthenticated_command_gets_login_link(self, test_client, teams_client, strategy):
        response = test_client.post("/api/messages", json=create_activity(text="!unlock-user jdoe", user_id="new-user"))

        body = response.json()
        assert body["success"] is False
        assert body["error"] == "authentication_required"
        assert "https://bot.example.com/auth/login?user_id=new-user" in body["response"]
        assert strategy.calls == []

    def test_authenticated_command_succeeds_and_is_audited(self, test_client, it_admin, teams_client, strategy):
        response = test_client.post("/api/messages", json=create_activity(text="!unlock-user jdoe"))

        body = response.json()
        assert body["success"] is True
        assert body["response"].startswith("✅")
        assert "Jane Doe" in body["response"]
        assert strategy.calls == [("!unlock-user jdoe", "IT")]
        assert teams_client.sent[-1]["text"] == body["response"]

        logs = test_client.get("/api/audit-logs", params={"userId": "it-user"}).json()
        assert logs["success"] is True
        assert [entry["command"] for entry in logs["data"]] == ["!unlock-user jdoe"]
        assert logs["data"][0]["result"] == "SUCCESS"

    def test_role_denial_reply(self, test_client, hr_user, strategy):
        response = test_client.post("/api/messages", json=create_activity(
            text="!enable-agent 10.0.0.5", user_id="hr-user", name="Hana HR", chat_id=HR_CHAT))

        body = response.json()
        assert body["success"] is False
        assert body["response"].startswith("❌")
        assert strategy.calls == []

    def test_reply_delivery_failure_keeps_outcome(self, test_client, it_admin, teams_client):
        from teams_coordinator.teams_client import RelayDeliveryError
        teams_client.error = RelayDeliveryError("Bot Connector error: 502")

        response = test_client.post("/api/messages", json=create_activity(text="!enable-agent host-1"))

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_reply_ignores_foreign_service_url(self, test_client, service_container):
        from unittest.mock import MagicMock, patch
        from teams_coordinator.teams_client import TeamsClient

        service_container.teams_client = TeamsClient("bot-id", "bot-secret",
                                                     service_url="https://smba.trafficmanager.net/teams")
        token = MagicMock(status_code=200)
        token.json.return_value = {"access_token": "BOT-TOKEN-XYZ"}
        ack = MagicMock(status_code=200)
        ack.json.return_value = {"id": "act-1"}
        activity = create_activity(text="hello")
        activity["serviceUrl"] = "https://attacker.example.net"

        with patch("teams_coordinator.teams_client.requests.post", side_effect=[token, ack]) as post:
            response = test_client.post("/api/messages", json=activity)

        assert response.status_code == 200
        urls = [c.args[0] for c in post.call_args_list]
        assert urls[1] == f"https://smba.trafficmanager.net/teams/v3/conversations/{IT_CHAT}/activities"
        assert not any("attacker.example.net" in url for url in urls)

    def test_invalid_activity(self, test_client):
        response = test_client.post("/api/messages", json={"type": "message", "text": "   ", "conversation": {"id": IT_CHAT}})
        assert response.status_code == 400


class TestAuthEndpoints:

    def test_login_redirects(self, test_client):
        response = test_client.get("/auth/login", params={"user_id": "u-1"}, follow_redirects=False)

        assert response.status_code == 302
        assert encode_state("u-1") in response.headers["location"]

    def test_callback_opens_session(self, test_client, session_store):
        response = test_client.get("/auth/callback", params={"code": "abc", "state": encode_state("it-user")})

        assert response.status_code == 200
        assert "Ivy Admin" in response.text
        session = session_store.get("it-user")
        assert session is not None
        assert session.department == "IT"
        assert session.mfa_verified is True

    def test_callback_with_bad_state(self, test_client, session_store):
        response = test_client.get("/auth/callback", params={"code": "abc", "state": "garbage"})

        assert response.status_code == 401
        assert len(session_store) == 0

    def test_logout_revokes_session(self, test_client, session_store, it_admin, strategy):
        response = test_client.post("/auth/logout", params={"user_id": "it-user"})

        assert response.status_code == 200
        assert session_store.get("it-user") is None

        reply = test_client.post("/api/messages", json=create_activity(text="!unlock-user jdoe")).json()
        assert reply["error"] == "authentication_required"
        assert strategy.calls == []

    def test_logout_requires_admin_key_when_configured(self, test_client, session_store, it_admin, monkeypatch):
        monkeypatch.setenv("ADMIN_API_KEY", "secret123")

        assert test_client.post("/auth/logout", params={"user_id": "it-user"}).status_code == 401
        assert session_store.get("it-user") is not None


class TestAuditEndpoints:

    def test_stats_after_commands(self, test_client, it_admin):
        test_client.post("/api/messages", json=create_activity(text="!unlock-user jdoe"))
        test_client.post("/api/messages", json=create_activity(text="!unlock-user ghost"))

        stats = test_client.get("/api/stats").json()["data"]
        assert stats["total_commands"] == 2
        assert stats["successful_commands"] == 1
        assert stats["failed_commands"] == 1
        assert stats["last_command"]["command"] == "!unlock-user ghost"

    def test_report_window_and_bad_dates(self, test_client, it_admin):
        test_client.post("/api/messages", json=create_activity(text="!enable-agent host-2"))

        in_range = test_client.get("/api/audit-logs", params={
            "startDate": "2000-01-01T00:00:00Z", "endDate": "2999-01-01T00:00:00Z"}).json()
        assert len(in_range["data"]) == 1

        bad = test_client.get("/api/audit-logs", params={"startDate": "yesterday", "endDate": "today"})
        assert bad.status_code == 400


class FakeInsightConnect:
    def __init__(self, status=None, error=None):
        self.status = status
        self.error = error
        self.requested = []

    async def get_command_status(self, command_id):
        self.requested.append(command_id)
        if self.error:
            raise self.error
        return self.status


class TestCommandStatusEndpoint:

    def test_not_available_in_relay_mode(self, test_client):
        response = test_client.get("/api/commands/cmd-1/status")
        assert response.status_code == 404

    def test_returns_upstream_status(self, test_client, service_container):
        client = FakeInsightConnect(status={"status": "completed", "details": {"status": "completed"}})
        service_container.insight_connect_client = client

        response = test_client.get("/api/commands/cmd-42/status")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "completed"
        assert client.requested == ["cmd-42"]

    def test_unknown_command(self, test_client, service_container):
        service_container.insight_connect_client = FakeInsightConnect(status=None)
        assert test_client.get("/api/commands/nope/status").status_code == 404

    def test_upstream_unreachable(self, test_client, service_container):
        import requests
        service_container.insight_connect_client = FakeInsightConnect(
            error=requests.exceptions.ConnectionError("connection refused"))

        response = test_client.get("/api/commands/cmd-1/status")

        assert response.status_code == 502
        assert "connection refused" in response.json()["error"]
