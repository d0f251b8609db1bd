import unittest
from datetime import datetime, timezone

from splitchat.model import (
    FrameParseError,
    Identity,
    Message,
    MessageType,
    chat_payload,
    parse_message,
    parse_timestamp,
    read_receipt_payload,
    typing_payload,
)


class ParseMessageTests(unittest.TestCase):
    def test_chat_frame_with_broker_fields(self):
        message = parse_message(
            {
                "id": 12,
                "senderId": 1,
                "senderName": "Ana",
                "recipientId": 2,
                "content": "hi",
                "timestamp": "2024-01-01T12:00:05",
                "isRead": False,
                "type": "CHAT",
            }
        )

        self.assertEqual(message.type, MessageType.CHAT)
        self.assertEqual((message.sender_id, message.recipient_id), (1, 2))
        self.assertEqual(message.content, "hi")
        self.assertEqual(message.id, 12)
        self.assertEqual(message.sender_name, "Ana")
        self.assertEqual(message.timestamp, datetime(2024, 1, 1, 12, 0, 5, tzinfo=timezone.utc))
        self.assertFalse(message.is_read)

    def test_bean_style_read_flag_is_accepted(self):
        message = parse_message({"senderId": 1, "recipientId": 2, "content": "x", "read": True})
        self.assertTrue(message.is_read)

    def test_missing_type_defaults_to_chat(self):
        message = parse_message({"senderId": 1, "recipientId": 2, "content": "x"})
        self.assertEqual(message.type, MessageType.CHAT)

    def test_control_frames_do_not_need_content(self):
        typing = parse_message({"senderId": 1, "recipientId": 2, "type": "TYPING", "timestamp": "2024-01-01T00:00:00Z"})
        receipt = parse_message({"senderId": 1, "recipientId": 2, "type": "READ_RECEIPT"})

        self.assertEqual(typing.type, MessageType.TYPING)
        self.assertIsNone(typing.content)
        self.assertEqual(receipt.type, MessageType.READ_RECEIPT)
        self.assertIsNone(receipt.timestamp)

    def test_rejects_invalid_frames(self):
        invalid = [
            "not a dict",
            {"recipientId": 2, "content": "x"},
            {"senderId": True, "recipientId": 2, "content": "x"},
            {"senderId": 1, "recipientId": "2", "content": "x"},
            {"senderId": 1, "recipientId": 2, "type": "CHAT"},
            {"senderId": 1, "recipientId": 2, "type": "CHAT", "content": ""},
            {"senderId": 1, "recipientId": 2, "type": "SHOUT", "content": "x"},
            {"senderId": 1, "recipientId": 2, "content": "x", "timestamp": "yesterday"},
            {"senderId": 1, "recipientId": 2, "content": "x", "isRead": "yes"},
            {"senderId": 1, "recipientId": 2, "content": 5},
        ]
        for payload in invalid:
            with self.subTest(payload=payload):
                with self.assertRaises(FrameParseError):
                    parse_message(payload)

    def test_frame_parse_error_is_value_error(self):
        self.assertTrue(issubclass(FrameParseError, ValueError))


class MessageTests(unittest.TestCase):
    def test_mark_read_is_monotonic_and_keeps_type(self):
        message = Message(sender_id=1, recipient_id=2, content="x")
        read = message.mark_read()

        self.assertFalse(message.is_read)
        self.assertTrue(read.is_read)
        self.assertIs(read.mark_read(), read)
        self.assertEqual(read.type, MessageType.CHAT)

    def test_involves(self):
        message = Message(sender_id=1, recipient_id=2, content="x")
        self.assertTrue(message.involves(1))
        self.assertTrue(message.involves(2))
        self.assertFalse(message.involves(3))


class TimestampTests(unittest.TestCase):
    def test_offsets_are_preserved_and_naive_is_utc(self):
        self.assertEqual(
            parse_timestamp("2024-01-01T14:00:00+02:00"),
            datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        )
        self.assertEqual(parse_timestamp("2024-01-01T12:00:00").tzinfo, timezone.utc)
        self.assertIsNone(parse_timestamp(None))

    def test_variable_length_fractions(self):
        self.assertEqual(
            parse_timestamp("2024-01-01T12:00:00.12"),
            datetime(2024, 1, 1, 12, 0, 0, 120000, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_timestamp("2024-01-01T12:00:01.123456789"),
            datetime(2024, 1, 1, 12, 0, 1, 123456, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_timestamp("2024-01-01T12:00:02.5Z"),
            datetime(2024, 1, 1, 12, 0, 2, 500000, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_timestamp("2024-01-01T14:00:03.1234+02:00"),
            datetime(2024, 1, 1, 12, 0, 3, 123400, tzinfo=timezone.utc),
        )

    def test_non_string_is_rejected(self):
        with self.assertRaises(FrameParseError):
            parse_timestamp(1704110400)


class PayloadBuilderTests(unittest.TestCase):
    def test_outbound_payloads_carry_no_broker_fields(self):
        self.assertEqual(chat_payload(7, "hello"), {"recipientId": 7, "content": "hello", "type": "CHAT"})
        self.assertEqual(typing_payload(7), {"recipientId": 7, "type": "TYPING"})
        self.assertEqual(read_receipt_payload(7), {"recipientId": 7, "type": "READ_RECEIPT"})

    def test_blank_chat_is_rejected(self):
        for text in ("", "   ", "\n\t"):
            with self.subTest(text=text):
                with self.assertRaises(ValueError):
                    chat_payload(7, text)


class IdentityTests(unittest.TestCase):
    def test_from_contact(self):
        identity = Identity.from_contact({"id": 3, "name": "Bo", "email": "bo@example.com"})
        self.assertEqual(identity, Identity(id=3, email="bo@example.com", display_name="Bo"))

    def test_from_contact_requires_id_and_email(self):
        with self.assertRaises(FrameParseError):
            Identity.from_contact({"name": "Bo", "email": "bo@example.com"})
        with self.assertRaises(FrameParseError):
            Identity.from_contact({"id": 3, "name": "Bo"})


if __name__ == "__main__":
    unittest.main()
