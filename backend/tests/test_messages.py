from __future__ import annotations

import json

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.api.routes import messages as messages_routes
from app.core.realtime import conversation_room
from app.models.message import MessageType
from app.schemas.messages import MessageSendRequest
from app.services.event_workflow_service import event_workflow_service
from app.services.file_storage import file_storage
from app.services.message_service import (
    attachment_caption,
    conversation_id,
    conversation_members,
    message_service,
)
from conftest import make_user, submit_payload


async def _event(db, world):
    return await event_workflow_service.submit_event(db, actor=world["requestor"], payload=submit_payload())


async def _send(db, world, event_id, *, sender="requestor", receiver="gso_member", content="Hello", hub=None):
    return await message_service.send(
        db,
        actor=world[sender],
        hub=hub,
        event_id=event_id,
        receiver_id=world[receiver].id,
        content=content,
    )


def _multipart_request(fields: dict[str, str], *, filename: str, payload: bytes, content_type: str) -> Request:
    boundary = "pgb-events-boundary"
    parts = [
        f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        for name, value in fields.items()
    ]
    parts.append(
        (
            f'--{boundary}\r\nContent-Disposition: form-data; name="file"; filename="{filename}"\r\n'
            f"Content-Type: {content_type}\r\n\r\n"
        ).encode()
        + payload
        + b"\r\n"
    )
    body = b"".join(parts) + f"--{boundary}--\r\n".encode()

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/messages/send-file",
        "query_string": b"",
        "headers": [
            (b"content-type", f"multipart/form-data; boundary={boundary}".encode()),
            (b"content-length", str(len(body)).encode()),
        ],
    }
    return Request(scope, receive)


def test_conversation_id_is_the_same_from_both_sides() -> None:
    assert conversation_id(7, 9, 3) == conversation_id(7, 3, 9) == "7-3-9"
    assert conversation_members("7-3-9") == (7, 3, 9)
    assert conversation_members("c-1") is None
    assert attachment_caption("a" * 40 + ".pdf", MessageType.file) == "Attachment: " + "a" * 27 + "..."


@pytest.mark.asyncio
async def test_send_reaches_receiver_and_conversation_room(db, world, hub) -> None:
    event = await _event(db, world)
    ana, ben = world["requestor"], world["gso_member"]

    message = await _send(db, world, event.id, content="  Can we get 20 more chairs?  ", hub=hub)

    assert message.content == "Can we get 20 more chairs?"
    assert message.is_read is False
    room = conversation_room(conversation_id(event.id, ana.id, ben.id))
    assert hub.events("user", ben.id) == ["new-message"]
    assert hub.events("room", room) == ["new-message"]
    [(_, _, _, payload)] = [item for item in hub.sent if item[0] == "room"]
    assert payload["message"]["sender"]["username"] == "ana"
    assert payload["conversation_id"] == conversation_id(event.id, ben.id, ana.id)


@pytest.mark.asyncio
async def test_only_people_on_the_event_can_talk_about_it(db, world) -> None:
    event = await _event(db, world)
    outsider = await make_user(db, "dina", department="MDRRMO")
    world = {**world, "outsider": outsider}

    with pytest.raises(HTTPException) as forbidden:
        await _send(db, world, event.id, receiver="outsider")
    with pytest.raises(HTTPException) as to_self:
        await _send(db, world, event.id, receiver="requestor")
    with pytest.raises(HTTPException) as missing:
        await message_service.send(db, actor=world["requestor"], hub=None, event_id=event.id, receiver_id=999, content="x")

    assert forbidden.value.status_code == 403
    assert to_self.value.status_code == 400
    assert missing.value.status_code == 404
    # Admins and tagged departments are both involved.
    await _send(db, world, event.id, sender="admin", receiver="pio_member")


@pytest.mark.asyncio
async def test_conversation_pages_newest_and_returns_them_oldest_first(db, world) -> None:
    event = await _event(db, world)
    for index, (sender, receiver) in enumerate(
        [("requestor", "gso_member"), ("gso_member", "requestor"), ("requestor", "gso_member")]
    ):
        await _send(db, world, event.id, sender=sender, receiver=receiver, content=f"message {index}")
    # A different pair on the same event stays out of the conversation.
    await _send(db, world, event.id, receiver="pio_member", content="to PIO")

    latest, total = await message_service.list_conversation(
        db, actor=world["gso_member"], event_id=event.id, other_user_id=world["requestor"].id, limit=2
    )
    earlier, _ = await message_service.list_conversation(
        db, actor=world["gso_member"], event_id=event.id, other_user_id=world["requestor"].id, page=2, limit=2
    )

    assert total == 3
    assert [item.content for item in latest] == ["message 1", "message 2"]
    assert [item.content for item in earlier] == ["message 0"]


@pytest.mark.asyncio
async def test_mark_conversation_read_clears_unread_and_tells_the_sender(db, world, hub) -> None:
    event = await _event(db, world)
    ana, ben = world["requestor"], world["gso_member"]
    await _send(db, world, event.id, content="one")
    await _send(db, world, event.id, content="two")

    assert await message_service.unread_count(db, actor=ben, event_id=event.id, sender_id=ana.id) == 2

    marked = await message_service.mark_conversation_read(db, actor=ben, hub=hub, event_id=event.id, sender_id=ana.id)
    again = await message_service.mark_conversation_read(db, actor=ben, hub=hub, event_id=event.id, sender_id=ana.id)

    assert (marked, again) == (2, 0)
    assert await message_service.unread_count(db, actor=ben, event_id=event.id, sender_id=ana.id) == 0
    assert hub.events("user", ana.id) == ["messages-read"]


@pytest.mark.asyncio
async def test_read_and_delete_are_limited_to_receiver_and_sender(db, world) -> None:
    event = await _event(db, world)
    message = await _send(db, world, event.id)
    message_id = message.id

    with pytest.raises(HTTPException) as not_receiver:
        await message_service.mark_read(db, actor=world["requestor"], message_id=message_id)
    with pytest.raises(HTTPException) as not_sender:
        await message_service.delete(db, actor=world["gso_member"], message_id=message_id)

    assert not_receiver.value.status_code == 404
    assert not_sender.value.status_code == 404

    read = await message_service.mark_read(db, actor=world["gso_member"], message_id=message_id)
    assert read.is_read is True

    await message_service.delete(db, actor=world["requestor"], message_id=message_id)
    remaining, total = await message_service.list_conversation(
        db, actor=world["requestor"], event_id=event.id, other_user_id=world["gso_member"].id
    )
    assert (remaining, total) == ([], 0)


@pytest.mark.asyncio
async def test_send_route_returns_201_with_participants(db, world, hub) -> None:
    event = await _event(db, world)

    response = await messages_routes.send_message(
        MessageSendRequest(eventId=event.id, receiverId=world["pio_member"].id, content="Coverage at 8?"),
        db=db,
        hub=hub,
        current_user=world["requestor"],
    )
    body = json.loads(response.body)

    assert response.status_code == 201
    assert body["data"]["receiver"]["department"] == "PIO"
    assert body["data"]["message_type"] == "text"


def test_blank_message_is_rejected() -> None:
    with pytest.raises(ValueError):
        MessageSendRequest(eventId=1, receiverId=2, content="   ")


@pytest.mark.asyncio
async def test_file_message_is_stored_under_messages(db, world, hub, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(file_storage, "_root", tmp_path)
    event = await _event(db, world)
    request = _multipart_request(
        {"eventId": str(event.id), "receiverId": str(world["gso_member"].id)},
        filename="floor-plan.pdf",
        payload=b"%PDF-1.7 plan",
        content_type="application/pdf",
    )

    response = await messages_routes.send_file_message(request, db=db, hub=hub, current_user=world["requestor"])
    data = json.loads(response.body)["data"]

    assert response.status_code == 201
    assert data["message_type"] == "file"
    assert data["content"] == "Attachment: floor-plan.pdf"
    [attachment] = data["attachments"]
    assert attachment["file_url"] == f"/api/messages/file/{attachment['filename']}"
    assert file_storage.resolve("messages", attachment["filename"]).read_bytes() == b"%PDF-1.7 plan"
    assert hub.events("user", world["gso_member"].id) == ["new-message"]


@pytest.mark.asyncio
async def test_file_message_to_an_outsider_leaves_no_file(db, world, hub, tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(file_storage, "_root", tmp_path)
    event = await _event(db, world)
    outsider = await make_user(db, "dina", department="MDRRMO")
    request = _multipart_request(
        {"eventId": str(event.id), "receiverId": str(outsider.id)},
        filename="photo.png",
        payload=b"\x89PNG data",
        content_type="image/png",
    )

    with pytest.raises(HTTPException) as exc_info:
        await messages_routes.send_file_message(request, db=db, hub=hub, current_user=world["requestor"])

    assert exc_info.value.status_code == 403
    assert list((tmp_path / "messages").iterdir()) == []
