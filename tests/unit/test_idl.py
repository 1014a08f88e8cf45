import base64
import hashlib
import json
from unittest.mock import AsyncMock

import pytest
from solders.pubkey import Pubkey

from mcp_solana_rpc import idl
from mcp_solana_rpc.errors import IdlError
from mcp_solana_rpc.idl import AccountInput, ArgInput, InstructionInput

from ..mocks import anchor_idl_data, mock_account, serve_accounts

pytestmark = pytest.mark.asyncio

PROGRAM_ID = Pubkey.new_unique()

LEGACY_IDL = {
    "version": "0.1.0",
    "name": "my_program",
    "instructions": [
        {
            "name": "setExpiration",
            "accounts": [
                {"name": "authority", "isMut": True, "isSigner": True},
                {"name": "config", "isMut": True, "isSigner": False},
                {"name": "systemProgram", "isMut": False, "isSigner": False},
            ],
            "args": [
                {"name": "expirationSlot", "type": "u64"},
                {"name": "newOwner", "type": "publicKey"},
            ],
        },
        {
            "name": "rotateKey",
            "accounts": [],
            "args": [{"name": "privateKeyHint", "type": "string"}],
        },
    ],
    "accounts": [{"name": "Config", "type": {"kind": "struct", "fields": []}}],
}

NEW_FORMAT_IDL = {
    "address": str(PROGRAM_ID),
    "metadata": {"name": "counter", "version": "0.1.0", "spec": "0.1.0"},
    "instructions": [
        {
            "name": "increment",
            "discriminator": [11, 18, 104, 9, 104, 174, 59, 33],
            "accounts": [{"name": "counter", "writable": True}, {"name": "user", "signer": True}],
            "args": [{"name": "amount", "type": "i64"}, {"name": "enabled", "type": "bool"}],
        }
    ],
    "accounts": [{"name": "Counter", "discriminator": [255, 176, 4, 245, 188, 253, 124, 25]}],
}


def sha8(text: str) -> bytes:
    return hashlib.sha256(text.encode()).digest()[:8]


def client_with_accounts(accounts: dict) -> AsyncMock:
    client = AsyncMock()
    serve_accounts(client, accounts)
    return client

# --- Discriminators and Filters ---

async def test_legacy_discriminators_use_sighash():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")
    assert idl.instruction_discriminator(ix) == sha8("global:set_expiration")
    assert idl.account_discriminator(LEGACY_IDL["accounts"][0]) == sha8("account:Config")


async def test_new_format_discriminators_are_taken_from_idl():
    ix = idl.find_instruction(NEW_FORMAT_IDL, "increment")
    assert idl.instruction_discriminator(ix) == bytes([11, 18, 104, 9, 104, 174, 59, 33])


async def test_build_gpa_filters():
    filters = idl.build_gpa_filters(LEGACY_IDL)
    assert filters == [
        {"memcmp": {"offset": 0, "bytes": base64.b64encode(sha8("account:Config")).decode(), "encoding": "base64"}}
    ]


async def test_find_instruction_accepts_snake_case():
    assert idl.find_instruction(LEGACY_IDL, "set_expiration")["name"] == "setExpiration"
    assert idl.find_instruction(LEGACY_IDL, "missing") is None


async def test_sensitive_args():
    assert [arg["name"] for arg in idl.sensitive_args(LEGACY_IDL)] == ["privateKeyHint"]

# --- Encoding ---

async def test_encode_instruction_data_in_idl_order():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")
    owner = Pubkey.new_unique()

    data = idl.encode_instruction_data(ix, [
        ArgInput(name="newOwner", value=str(owner)),
        ArgInput(name="expirationSlot", value="42"),
    ])

    assert data == sha8("global:set_expiration") + (42).to_bytes(8, "little") + bytes(owner)


async def test_encode_signed_and_bool_args():
    ix = idl.find_instruction(NEW_FORMAT_IDL, "increment")

    data = idl.encode_instruction_data(ix, [ArgInput(name="amount", value=-1), ArgInput(name="enabled", value=True)])

    assert data[8:] == b"\xff" * 8 + b"\x01"


async def test_encode_missing_argument_is_rejected():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")
    with pytest.raises(IdlError, match="newOwner"):
        idl.encode_instruction_data(ix, [ArgInput(name="expirationSlot", value=1)])


async def test_encode_unknown_argument_is_rejected():
    ix = idl.find_instruction(NEW_FORMAT_IDL, "increment")
    with pytest.raises(IdlError, match="extra"):
        idl.encode_instruction_data(ix, [
            ArgInput(name="amount", value=1),
            ArgInput(name="enabled", value=False),
            ArgInput(name="extra", value=1),
        ])


async def test_encode_rejects_bad_values_and_types():
    with pytest.raises(IdlError):
        idl.encode_arg("u8", 256, "small")
    with pytest.raises(IdlError):
        idl.encode_arg("u64", True, "flag")
    with pytest.raises(IdlError):
        idl.encode_arg("publicKey", "not-a-key", "owner")
    with pytest.raises(IdlError, match="Unsupported"):
        idl.encode_arg({"vec": "u8"}, [1, 2], "bytes")


async def test_string_arg_is_length_prefixed():
    assert idl.encode_arg("string", "hi", "s") == b"\x02\x00\x00\x00hi"


async def test_account_metas_fall_back_to_default():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")
    payer = Pubkey.new_unique()
    config = Pubkey.new_unique()

    metas = idl.build_account_metas(ix, [AccountInput(name="config", pubkey=str(config))], payer)

    assert [meta.pubkey for meta in metas] == [payer, config, payer]
    assert [(meta.is_signer, meta.is_writable) for meta in metas] == [(True, True), (False, True), (False, False)]


async def test_account_metas_reject_unknown_account():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")
    with pytest.raises(IdlError, match="vault"):
        idl.build_account_metas(ix, [AccountInput(name="vault", pubkey=str(Pubkey.new_unique()))], Pubkey.new_unique())


async def test_parse_instruction_input():
    parsed = idl.parse_instruction_input('{"accounts": [{"name": "config", "pubkey": "abc"}], "args": [{"name": "x", "value": 1}]}')
    assert parsed == InstructionInput(accounts=[AccountInput(name="config", pubkey="abc")], args=[ArgInput(name="x", value=1)])

    with pytest.raises(IdlError):
        idl.parse_instruction_input("{not json")

# --- Fetching ---

async def test_fetch_idl_from_anchor_account():
    client = client_with_accounts({
        idl.anchor_idl_address(PROGRAM_ID): mock_account(anchor_idl_data(LEGACY_IDL)),
    })

    assert await idl.fetch_idl(client, PROGRAM_ID) == LEGACY_IDL
    assert client.get_account_info.await_count == 1


async def test_fetch_idl_falls_back_in_priority_order():
    raw = json.dumps(NEW_FORMAT_IDL).encode()
    client = client_with_accounts({
        idl.anchor_idl_address(PROGRAM_ID): mock_account(b"garbage"),
        idl.legacy_idl_address(PROGRAM_ID): mock_account(bytes(8) + raw + bytes(16)),
    })

    assert await idl.fetch_idl(client, PROGRAM_ID) == NEW_FORMAT_IDL


async def test_fetch_idl_from_shank_registry():
    client = client_with_accounts({
        idl.shank_idl_address(PROGRAM_ID): mock_account(json.dumps(LEGACY_IDL).encode()),
    })

    assert await idl.fetch_idl(client, PROGRAM_ID) == LEGACY_IDL
    assert client.get_account_info.await_count == 3


async def test_fetch_idl_not_found():
    client = client_with_accounts({})
    assert await idl.fetch_idl(client, PROGRAM_ID) is None

# --- CPI ---

async def test_render_cpi_example():
    ix = idl.find_instruction(LEGACY_IDL, "setExpiration")

    code = idl.render_cpi_example(LEGACY_IDL, ix)

    assert "use my_program::cpi::accounts::SetExpiration;" in code
    assert "expiration_slot: u64, new_owner: Pubkey" in code
    assert "system_program: ctx.accounts.system_program.to_account_info()," in code
    assert "my_program::cpi::set_expiration(cpi_ctx, expiration_slot, new_owner)" in code
