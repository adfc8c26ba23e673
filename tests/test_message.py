"""Classification of raw WhatsApp messages into payloads."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from HyperBridge.errors import UnsupportedPayloadError
from HyperBridge.message import MEDIA_KINDS
from HyperBridge.message.components import MediaPayload, PayloadKind, TextPayload
from HyperBridge.message.whatsapp import (
    build_vcard,
    classify,
    extract_text,
    parse_vcard,
    phone_of,
    to_jid,
)


def _raw(message):
    return {"key": {"remoteJid": "1@s.whatsapp.net", "id": "X"}, "message": message}


@pytest.mark.parametrize(
    "message,kind",
    [
        ({"conversation": "hi"}, PayloadKind.TEXT),
        ({"extendedTextMessage": {"text": "link https://x.y"}}, PayloadKind.TEXT),
        ({"imageMessage": {"caption": "sunset", "mimetype": "image/jpeg"}}, PayloadKind.IMAGE),
        ({"videoMessage": {"mimetype": "video/mp4"}}, PayloadKind.VIDEO),
        ({"videoMessage": {"gifPlayback": True}}, PayloadKind.ANIMATION),
        ({"videoMessage": {"ptv": True}}, PayloadKind.VIDEO_NOTE),
        ({"ptvMessage": {"seconds": 4}}, PayloadKind.VIDEO_NOTE),
        ({"audioMessage": {"ptt": True}}, PayloadKind.VOICE),
        ({"audioMessage": {"mimetype": "audio/mpeg"}}, PayloadKind.AUDIO),
        ({"documentMessage": {"fileName": "report.pdf"}}, PayloadKind.DOCUMENT),
        ({"stickerMessage": {"isAnimated": True}}, PayloadKind.STICKER),
        ({"locationMessage": {"degreesLatitude": 52.5, "degreesLongitude": 13.4}}, PayloadKind.LOCATION),
        ({"liveLocationMessage": {"degreesLatitude": 1, "degreesLongitude": 2}}, PayloadKind.LOCATION),
        ({"contactMessage": {"displayName": "Bob", "vcard": build_vcard("Bob", "+123")}}, PayloadKind.CONTACT),
    ],
)
def test_each_message_has_one_kind(message, kind):
    assert classify(_raw(message)).kind is kind


def test_media_fields_are_carried():
    payload = classify(_raw({"documentMessage": {"fileName": "a.pdf", "title": "A", "caption": "see"}}))
    assert isinstance(payload, MediaPayload)
    assert payload.file_name == "a.pdf"
    assert payload.caption == "see"

    sticker = classify(_raw({"stickerMessage": {"isAnimated": True}}))
    assert sticker.animated is True


def test_wrappers_are_unwrapped():
    ephemeral = {"ephemeralMessage": {"message": {"conversation": "secret"}}}
    payload = classify(_raw(ephemeral))
    assert isinstance(payload, TextPayload)
    assert payload.text == "secret"

    view_once = {"viewOnceMessageV2": {"message": {"imageMessage": {"caption": "once"}}}}
    payload = classify(_raw(view_once))
    assert payload.kind is PayloadKind.IMAGE
    assert payload.view_once is True

    doc = {"documentWithCaptionMessage": {"message": {"documentMessage": {"caption": "cv", "fileName": "cv.pdf"}}}}
    assert classify(_raw(doc)).kind is PayloadKind.DOCUMENT


def test_contact_array_uses_first_entry():
    message = {
        "contactsArrayMessage": {
            "contacts": [
                {"displayName": "Ann", "vcard": build_vcard("Ann", "+111")},
                {"displayName": "Ben", "vcard": build_vcard("Ben", "+222")},
            ]
        }
    }
    payload = classify(_raw(message))
    assert payload.display_name == "Ann"
    assert payload.phone == "+111"


def test_unsupported_kind_is_reported():
    with pytest.raises(UnsupportedPayloadError) as info:
        classify(_raw({"pollCreationMessage": {"name": "Lunch?"}, "messageContextInfo": {}}))
    assert info.value.kind == "pollCreationMessage"

    with pytest.raises(UnsupportedPayloadError) as info:
        classify(_raw({"messageContextInfo": {}}))
    assert info.value.kind == "empty"


def test_media_payload_rejects_non_media_kind():
    assert PayloadKind.TEXT not in MEDIA_KINDS
    with pytest.raises(ValidationError):
        MediaPayload(kind=PayloadKind.TEXT)


def test_vcard_round_trip_fields():
    assert parse_vcard(build_vcard("Jane Doe", "+15550001", "Jane", "Doe")) == ("Jane Doe", "+15550001")
    assert parse_vcard("") == ("", "")


def test_jid_helpers():
    assert phone_of("4915112345678:12@s.whatsapp.net") == "4915112345678"
    assert to_jid("+1 (555) 000-1111") == "15550001111@s.whatsapp.net"
    assert to_jid("120363@g.us") == "120363@g.us"
    assert extract_text({"imageMessage": {"caption": "cap"}}) == "cap"
