"""
Tests for EventEnvelope stream serialization.
"""

from uuid import uuid4

from sevencore.envelope import EventEnvelope


class TestEventEnvelope:
    def test_stream_data_is_flat_strings(self):
        envelope = EventEnvelope.create(
            event_type="order_created",
            tenant_id=uuid4(),
            payload={"order_id": "abc", "total": 10000},
            correlation_id="corr-1",
        )

        data = envelope.to_stream_data()

        assert all(isinstance(v, str) for v in data.values())
        assert data["version"] == "1"
        assert data["correlation_id"] == "corr-1"

    def test_parse_stream_message(self):
        tenant_id = uuid4()
        envelope = EventEnvelope.create(
            event_type="whatsapp.inbound_message",
            tenant_id=tenant_id,
            payload={"text": "Bonjour"},
            metadata={"source": "webhook"},
        )

        parsed = EventEnvelope.from_stream_message("1700000000000-0", envelope.to_stream_data())

        assert parsed.event_id == envelope.event_id
        assert parsed.tenant_id == tenant_id
        assert parsed.payload == {"text": "Bonjour"}
        assert parsed.correlation_id is None
        assert parsed.metadata == {"source": "webhook", "stream_msg_id": "1700000000000-0"}
        assert parsed.occurred_at == envelope.occurred_at

    def test_missing_optional_fields(self):
        data = {
            "event_id": str(uuid4()),
            "event_type": "order_created",
            "tenant_id": str(uuid4()),
        }

        parsed = EventEnvelope.from_stream_message("1-0", data)

        assert parsed.version == 1
        assert parsed.payload == {}
        assert parsed.metadata == {"stream_msg_id": "1-0"}
