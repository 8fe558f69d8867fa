"""Recover stored logins from a panel's ``fulldata.dat`` payload.

Panels embed their own login table in the binary telemetry they return. Past a
firmware-dependent offset the table starts with a form-feed byte (``0x0C``);
each entry is a base64 encoded ``user:pass`` token closed by an ETX byte
(``0x03``). Nothing else about the layout is documented, so every token is
checked for a plausible size and a ``:`` separator before it is accepted.
"""

from __future__ import annotations

import base64
import binascii

from .models import Credential

SENTINEL_BYTE = 0x0C
TERMINATOR_BYTE = 0x03

# The sentinel only counts strictly past this offset.
MIN_SENTINEL_OFFSET = 900
MAX_SCAN_OFFSET = 1450

MIN_TOKEN_LENGTH = 4
MAX_TOKEN_LENGTH = 18

MAX_LOGINS = 3
MAX_CONSECUTIVE_REJECTIONS = 3


def decode_token(token: bytes) -> Credential | None:
    """Decode one base64 ``user:pass`` token, or return None if it is implausible."""
    if not MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH:
        return None
    try:
        text = token.decode("ascii")
        padded = text + "=" * (-len(text) % 4)
        login = base64.b64decode(padded).decode("utf-8")
    except (UnicodeDecodeError, binascii.Error, ValueError):
        return None
    if login == ":" or ":" not in login:
        return None
    username, _, password = login.partition(":")
    return Credential(username=username, password=password)


def extract_logins(payload: bytes) -> list[Credential]:
    """Scan ``payload`` and return the logins found, in payload order.

    The scan stops past :data:`MAX_SCAN_OFFSET`, once :data:`MAX_LOGINS`
    logins were recovered, or after :data:`MAX_CONSECUTIVE_REJECTIONS`
    rejected tokens in a row. Duplicates are kept. Never raises.
    """
    logins: list[Credential] = []
    found_data_start = False
    token = bytearray()
    rejections = 0

    for offset, byte in enumerate(payload):
        if offset > MAX_SCAN_OFFSET:
            break
        if len(logins) >= MAX_LOGINS or rejections >= MAX_CONSECUTIVE_REJECTIONS:
            break

        if not found_data_start:
            if byte == SENTINEL_BYTE and offset > MIN_SENTINEL_OFFSET:
                found_data_start = True
            continue

        if byte != TERMINATOR_BYTE:
            token.append(byte)
            continue

        credential = decode_token(bytes(token))
        token.clear()
        if credential is None:
            rejections += 1
            continue
        rejections = 0
        logins.append(credential)

    return logins
