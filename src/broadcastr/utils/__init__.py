"""Utilities: identity keys, NIP-01 wire codec, WebSocket transport, backup files."""

from .backup import (
    BackupInfo,
    dump_backup,
    list_backups,
    load_backup,
    parse_backup,
    write_backup,
)
from .keys import parse_pubkey, to_npub
from .protocol import (
    AuthMessage,
    ClosedMessage,
    EoseMessage,
    EventMessage,
    NoticeMessage,
    OkMessage,
    RelayMessage,
    UnknownMessage,
    decode_message,
    encode_close,
    encode_event,
    encode_req,
)
from .transport import (
    DEFAULT_TIMEOUT,
    Connection,
    ConnectionState,
    Connector,
    RelayConnection,
    connect_relay,
)


__all__ = [
    "DEFAULT_TIMEOUT",
    "AuthMessage",
    "BackupInfo",
    "ClosedMessage",
    "Connection",
    "ConnectionState",
    "Connector",
    "EoseMessage",
    "EventMessage",
    "NoticeMessage",
    "OkMessage",
    "RelayConnection",
    "RelayMessage",
    "UnknownMessage",
    "connect_relay",
    "decode_message",
    "dump_backup",
    "encode_close",
    "encode_event",
    "encode_req",
    "list_backups",
    "load_backup",
    "parse_backup",
    "parse_pubkey",
    "to_npub",
    "write_backup",
]
