import dataclasses

import pytest

from orderinfo.ports import Cache, Message, MessageReader, MessageWriter


class _Writer:
    def __init__(self):
        self.sent = []

    def write_messages(self, *messages):
        self.sent.extend(messages)

    def close(self):
        pass


def test_message_defaults_and_equality():
    msg = Message(b"payload")
    assert msg.topic == "" and msg.key is None
    assert msg == Message(value=b"payload", topic="")


def test_message_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        Message(b"x").topic = "other"


def test_writer_protocol_structural():
    writer = _Writer()
    assert isinstance(writer, MessageWriter)
    assert not isinstance(writer, MessageReader)
    assert not isinstance(writer, Cache)
    writer.write_messages(Message(b"a", "t"))
    assert writer.sent == [Message(b"a", "t")]