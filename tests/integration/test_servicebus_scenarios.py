"""
End-to-End Scenario Tests

Walks through typical explorer sessions against the in-memory namespace.

Author: SB Explorer Contributors
Date: 2026-10-16
"""


class TestTopicScenario:
    """Creating a topic and inspecting it."""

    def test_new_topic_has_no_subscriptions(self, client, broker):
        response = client.post("/api/topics/create", json={"topicName": "orders-events"})
        assert response.status_code == 200
        assert response.json() == {"success": True}

        topics = client.get("/api/topics").json()["topics"]
        assert "orders-events" in [t["name"] for t in topics]

        response = client.get("/api/topics/orders-events/subscriptions")
        assert response.status_code == 200
        assert response.json() == {"subscriptions": []}

    def test_each_request_uses_its_own_session(self, client, broker):
        client.post("/api/topics/create", json={"topicName": "orders-events"})
        client.get("/api/topics")
        client.get("/api/topics/orders-events/subscriptions")

        assert broker.calls_to("create_clients") == 3
        assert broker.calls_to("client_close") == 3
        assert broker.calls_to("admin_close") == 3


class TestQueueMessagingScenario:
    """Sending to a queue and browsing it."""

    def test_send_then_peek(self, client, broker):
        client.post("/api/queues/create", json={"queueName": "orders"})

        response = client.post("/api/messages/send", json={
            "queueName": "orders",
            "message": {"body": "hello", "messageId": "m1"},
        })
        assert response.json() == {"success": True}

        response = client.post("/api/messages/peek", json={"queueName": "orders", "maxCount": 5})
        messages = response.json()["messages"]

        assert len(messages) == 1
        assert messages[0]["body"] == "hello"
        assert messages[0]["messageId"] == "m1"

        queue = client.get("/api/queues/orders").json()["queue"]
        assert queue["activeMessageCount"] == 1

    def test_dead_letter_triage(self, client, broker):
        """Inspect dead letters, purge them, and confirm live messages survive."""
        client.post("/api/queues/create", json={"queueName": "orders"})
        broker.seed("orders", "live")
        broker.seed("orders", "bad-1", sub_queue="deadletter", dead_letter_reason="ParseError")
        broker.seed("orders", "bad-2", sub_queue="deadletter", dead_letter_reason="ParseError")

        dead = client.post("/api/messages/deadletter", json={"queueName": "orders"}).json()["messages"]
        assert [m["body"] for m in dead] == ["bad-1", "bad-2"]
        assert {m["deadLetterReason"] for m in dead} == {"ParseError"}

        purged = client.post("/api/messages/purge", json={"queueName": "orders", "purgeDeadLetter": True})
        assert purged.json() == {"purgedCount": 2}

        assert client.post("/api/messages/deadletter", json={"queueName": "orders"}).json() == {"messages": []}
        live = client.post("/api/messages/peek", json={"queueName": "orders"}).json()["messages"]
        assert [m["body"] for m in live] == ["live"]


class TestTopicFanOutScenario:
    """Publishing to a topic and reading each subscription."""

    def test_fan_out(self, client, broker):
        client.post("/api/topics/create", json={"topicName": "orders-events"})
        for name in ["audit", "billing"]:
            client.post(
                "/api/topics/orders-events/subscriptions/create", json={"subscriptionName": name}
            )

        client.post("/api/messages/send", json={
            "topicName": "orders-events",
            "message": {"body": {"orderId": 7}, "subject": "order.created"},
        })

        for name in ["audit", "billing"]:
            messages = client.post(
                "/api/messages/peek",
                json={"topicName": "orders-events", "subscriptionName": name},
            ).json()["messages"]
            assert len(messages) == 1
            assert messages[0]["subject"] == "order.created"
            assert messages[0]["contentType"] == "application/json"

        subscriptions = client.get("/api/topics/orders-events/subscriptions").json()["subscriptions"]
        assert [s["messageCount"] for s in subscriptions] == [1, 1]
