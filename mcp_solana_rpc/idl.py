"""
Anchor IDL helpers: fetching a program's IDL from chain, discriminators,
getProgramAccounts filters, and instruction encoding from JSON input.

Both the legacy IDL format (camelCase names, `isMut`/`isSigner`, `publicKey`)
and the 0.30+ format (explicit `discriminator` arrays, `writable`/`signer`,
`pubkey`) are understood.
"""

import base64
import hashlib
import json
import re
import zlib
from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, Field
from solana.rpc.async_api import AsyncClient
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .errors import IdlError
from .logs import diagnostics

ANCHOR_IDL_SEED = "anchor:idl"
SHANK_IDL_PROGRAM_ID = Pubkey.from_string("SHANKxjhDKxhCjgSEhUvZy5uW8Xb4VuKLyAXJVZbDGr")
DISCRIMINATOR_SIZE = 8

# (byte width, signed)
INTEGER_TYPES = {
    "u8": (1, False), "i8": (1, True),
    "u16": (2, False), "i16": (2, True),
    "u32": (4, False), "i32": (4, True),
    "u64": (8, False), "i64": (8, True),
    "u128": (16, False), "i128": (16, True),
}
PUBKEY_TYPES = ("publicKey", "pubkey")

SENSITIVE_KEYWORDS = ("key", "secret", "password", "private")


# --- Input Structures ---

class AccountInput(BaseModel):
    name: str
    pubkey: str


class ArgInput(BaseModel):
    name: str
    value: Any = None


class InstructionInput(BaseModel):
    """The `inputJson` accepted by testProgramIdl."""
    accounts: List[AccountInput] = Field(default_factory=list)
    args: List[ArgInput] = Field(default_factory=list)


def parse_instruction_input(input_json: str) -> InstructionInput:
    try:
        return InstructionInput.model_validate_json(input_json)
    except pydantic.ValidationError as e:
        raise IdlError(f"Invalid input JSON: {e.errors()[0]['msg']}") from e


# --- Naming and Discriminators ---

def snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def pascal_case(name: str) -> str:
    return "".join(part[:1].upper() + part[1:] for part in re.split(r"_", snake_case(name)) if part)


def _sighash(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:DISCRIMINATOR_SIZE]


def account_discriminator(account: Dict[str, Any]) -> bytes:
    if "discriminator" in account:
        return bytes(account["discriminator"])
    return _sighash("account", account["name"])


def instruction_discriminator(instruction: Dict[str, Any]) -> bytes:
    if "discriminator" in instruction:
        return bytes(instruction["discriminator"])
    return _sighash("global", snake_case(instruction["name"]))


def idl_name(idl: Dict[str, Any]) -> str:
    return idl.get("metadata", {}).get("name") or idl.get("name") or "program"


# --- Fetching ---

def anchor_idl_address(program_id: Pubkey) -> Pubkey:
    """The account Anchor's `idl init` writes the compressed IDL to."""
    base, _ = Pubkey.find_program_address([], program_id)
    return Pubkey.create_with_seed(base, ANCHOR_IDL_SEED, program_id)


def legacy_idl_address(program_id: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address([ANCHOR_IDL_SEED.encode(), bytes(program_id)], program_id)
    return address


def shank_idl_address(program_id: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address([b"shank:idl", bytes(program_id)], SHANK_IDL_PROGRAM_ID)
    return address


def decode_anchor_idl_account(data: bytes) -> Dict[str, Any]:
    # discriminator (8) | authority (32) | data_len (u32 LE) | zlib(json)
    header = DISCRIMINATOR_SIZE + 32
    if len(data) < header + 4:
        raise IdlError("IDL account is too small")
    data_len = int.from_bytes(data[header:header + 4], "little")
    compressed = data[header + 4:header + 4 + data_len]
    return json.loads(zlib.decompress(compressed))


def decode_raw_idl(data: bytes) -> Dict[str, Any]:
    return json.loads(data.rstrip(b"\x00").decode("utf-8"))


async def fetch_idl(client: AsyncClient, program_id: Pubkey) -> Optional[Dict[str, Any]]:
    """Fetches a program's IDL, trying each known location in priority order.

    Returns None when no location holds a decodable IDL. RPC failures are
    propagated; a location whose data does not decode is skipped.
    """
    sources = [
        ("Anchor IDL account", anchor_idl_address(program_id), decode_anchor_idl_account),
        ("legacy Anchor IDL address", legacy_idl_address(program_id), lambda data: decode_raw_idl(data[DISCRIMINATOR_SIZE:])),
        ("Shank IDL account", shank_idl_address(program_id), decode_raw_idl),
    ]
    for label, address, decode in sources:
        diagnostics.info(f"Trying {label}: {address}")
        resp = await client.get_account_info(address)
        if resp.value is None:
            continue
        try:
            idl = decode(bytes(resp.value.data))
        except (IdlError, ValueError, zlib.error) as e:
            diagnostics.info(f"Could not decode {label} {address}: {e}")
            continue
        diagnostics.info(f"IDL fetched from {label}")
        return idl

    diagnostics.info(f"No IDL found for {program_id} using any method")
    return None


# --- Filters ---

def build_gpa_filters(idl: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One memcmp filter per account type, matching its discriminator at offset 0."""
    return [
        {
            "memcmp": {
                "offset": 0,
                "bytes": base64.b64encode(account_discriminator(account)).decode(),
                "encoding": "base64",
            }
        }
        for account in idl.get("accounts", [])
    ]


def sensitive_args(idl: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        arg
        for ix in idl.get("instructions", [])
        for arg in ix.get("args", [])
        if any(keyword in arg["name"].lower() for keyword in SENSITIVE_KEYWORDS)
    ]


# --- Instruction Encoding ---

def find_instruction(idl: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    for ix in idl.get("instructions", []):
        if ix["name"] == name or snake_case(ix["name"]) == snake_case(name):
            return ix
    return None


def encode_arg(arg_type: Any, value: Any, name: str) -> bytes:
    if isinstance(arg_type, str) and arg_type in INTEGER_TYPES:
        width, signed = INTEGER_TYPES[arg_type]
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise IdlError(f"Argument '{name}' must be an integer")
        try:
            return int(value).to_bytes(width, "little", signed=signed)
        except (ValueError, OverflowError) as e:
            raise IdlError(f"Argument '{name}' is not a valid {arg_type}: {e}") from e
    if arg_type in PUBKEY_TYPES:
        try:
            return bytes(Pubkey.from_string(value))
        except (ValueError, TypeError) as e:
            raise IdlError(f"Argument '{name}' is not a valid public key") from e
    if arg_type == "bool":
        if not isinstance(value, bool):
            raise IdlError(f"Argument '{name}' must be a boolean")
        return bytes([int(value)])
    if arg_type == "string":
        encoded = str(value).encode("utf-8")
        return len(encoded).to_bytes(4, "little") + encoded
    raise IdlError(f"Unsupported type {json.dumps(arg_type)} for argument '{name}'")


def encode_instruction_data(ix: Dict[str, Any], supplied: List[ArgInput]) -> bytes:
    """Discriminator followed by each declared argument, in IDL order.

    The supplied arguments must match the declared ones exactly by name.
    """
    declared = [arg["name"] for arg in ix.get("args", [])]
    values = {arg.name: arg.value for arg in supplied}
    missing = [name for name in declared if name not in values]
    unknown = [name for name in values if name not in declared]
    if missing:
        raise IdlError(f"Missing value for argument(s) of '{ix['name']}': {', '.join(missing)}")
    if unknown:
        raise IdlError(f"Unknown argument(s) for '{ix['name']}': {', '.join(unknown)}")

    data = instruction_discriminator(ix)
    for arg in ix.get("args", []):
        diagnostics.info(f"Processing arg: {arg['name']}, type: {arg['type']}, value: {values[arg['name']]}")
        data += encode_arg(arg["type"], values[arg["name"]], arg["name"])
    return data


def _flatten_accounts(accounts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    flat = []
    for account in accounts:
        if "accounts" in account:
            flat.extend(_flatten_accounts(account["accounts"]))
        else:
            flat.append(account)
    return flat


def build_account_metas(ix: Dict[str, Any], supplied: List[AccountInput], default: Pubkey) -> List[AccountMeta]:
    """Account metas in IDL order; accounts not supplied by name fall back to `default`."""
    declared = _flatten_accounts(ix.get("accounts", []))
    declared_names = {account["name"] for account in declared}
    unknown = [account.name for account in supplied if account.name not in declared_names]
    if unknown:
        raise IdlError(f"Unknown account(s) for '{ix['name']}': {', '.join(unknown)}")

    pubkeys = {account.name: account.pubkey for account in supplied}
    metas = []
    for account in declared:
        try:
            pubkey = Pubkey.from_string(pubkeys[account["name"]]) if account["name"] in pubkeys else default
        except ValueError as e:
            raise IdlError(f"Account '{account['name']}' is not a valid public key") from e
        metas.append(AccountMeta(
            pubkey=pubkey,
            is_signer=bool(account.get("isSigner", account.get("signer", False))),
            is_writable=bool(account.get("isMut", account.get("writable", False))),
        ))
    return metas


def build_instruction(program_id: Pubkey, ix: Dict[str, Any], input_data: InstructionInput, default_account: Pubkey) -> Instruction:
    return Instruction(
        program_id=program_id,
        data=encode_instruction_data(ix, input_data.args),
        accounts=build_account_metas(ix, input_data.accounts, default_account),
    )


# --- CPI Example ---

RUST_TYPES = {"publicKey": "Pubkey", "pubkey": "Pubkey", "string": "String", "bool": "bool", "bytes": "Vec<u8>"}


def rust_type(arg_type: Any) -> str:
    if isinstance(arg_type, str):
        return arg_type if arg_type in INTEGER_TYPES else RUST_TYPES.get(arg_type, arg_type)
    if isinstance(arg_type, dict):
        if "vec" in arg_type:
            return f"Vec<{rust_type(arg_type['vec'])}>"
        if "option" in arg_type:
            return f"Option<{rust_type(arg_type['option'])}>"
        if "defined" in arg_type:
            defined = arg_type["defined"]
            return defined["name"] if isinstance(defined, dict) else defined
    return "/* unsupported type */"


def render_cpi_example(idl: Dict[str, Any], ix: Dict[str, Any]) -> str:
    """Rust snippet invoking `ix` from another Anchor program."""
    crate = snake_case(idl_name(idl))
    ix_name = snake_case(ix["name"])
    accounts_struct = pascal_case(ix["name"])
    accounts = _flatten_accounts(ix.get("accounts", []))
    args = ix.get("args", [])

    params = "".join(f", {snake_case(arg['name'])}: {rust_type(arg['type'])}" for arg in args)
    call_args = "".join(f", {snake_case(arg['name'])}" for arg in args)
    account_lines = "\n".join(
        f"        {snake_case(account['name'])}: ctx.accounts.{snake_case(account['name'])}.to_account_info(),"
        for account in accounts
    )
    return (
        f"use anchor_lang::prelude::*;\n"
        f"use {crate}::cpi::accounts::{accounts_struct};\n"
        f"use {crate}::program::{pascal_case(crate)};\n"
        f"\n"
        f"pub fn call_{ix_name}(ctx: Context<Call{accounts_struct}>{params}) -> Result<()> {{\n"
        f"    let cpi_program = ctx.accounts.{crate}_program.to_account_info();\n"
        f"    let cpi_accounts = {accounts_struct} {{\n"
        f"{account_lines}\n"
        f"    }};\n"
        f"    let cpi_ctx = CpiContext::new(cpi_program, cpi_accounts);\n"
        f"    {crate}::cpi::{ix_name}(cpi_ctx{call_args})\n"
        f"}}\n"
    )
