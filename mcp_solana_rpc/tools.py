"""
Solana tool handlers.

Each tool wraps one (or a few) calls to an external collaborator: the Solana
JSON-RPC node through `solana.rpc.async_api.AsyncClient`, the Helius priority
fee API, verify.osec.io, or Dune Analytics through `httpx`. Failures are
raised and turned into `Error: <message>` content by the registry.
"""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import Field, field_validator
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from . import idl as idl_utils
from .config import LAMPORTS_PER_SOL, Settings
from .dune import CPI_PROGRAM_CALLS_QUERY_ID, PROGRAM_CALLS_QUERY_ID, TOP_SIGNERS_QUERY_ID, DuneClient
from .errors import IdlError, UpstreamError
from .logs import diagnostics
from .registry import ToolInput, ToolRegistry, text_result

BPF_LOADER_UPGRADEABLE_PROGRAM_ID = Pubkey.from_string("BPFLoaderUpgradeab1e11111111111111111111111")
OSEC_VERIFY_URL = "https://verify.osec.io/status"
NO_IDL_FOUND = "No IDL found for the given program ID."

# --- Input Schemas ---

class PublicKeyInput(ToolInput):
    public_key: str = Field(..., alias="publicKey", description="32 byte base58 encoded address.")


class RentExemptionInput(ToolInput):
    data_size: int = Field(..., alias="dataSize", ge=0, description="Account data size in bytes.")


class SignatureInput(ToolInput):
    signature: str = Field(..., description="64 byte base58 encoded transaction signature.")


class PriorityFeeInput(ToolInput):
    # Misspelled wire name is part of the published tool interface
    serealized_transaction: str = Field(..., alias="serealizedTransaction", description="Serialized transaction (base58).")


class ProgramInput(ToolInput):
    program_id: str = Field(..., alias="programId", description="Program ID (base58).")


class ProgramInstructionInput(ProgramInput):
    instruction_name: str = Field(..., alias="instructionName", description="Instruction name as declared in the IDL.")


class ProgramIdlTestInput(ProgramInstructionInput):
    input_json: str = Field(
        ...,
        alias="inputJson",
        description='JSON object: {"accounts": [{"name", "pubkey"}], "args": [{"name", "value"}]}.',
    )


class DuneInput(ProgramInput):
    days: int = Field(10, ge=1, description="Number of days of history.")


def _check_http_url(value: Optional[str]) -> Optional[str]:
    if value is not None:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise ValueError(str(e)) from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("must be an http(s) URL")
    return value


class SecurityTxtInput(ToolInput):
    name: str
    project_url: str
    contacts: str
    policy: str
    preferred_languages: Optional[str] = None
    encryption: Optional[str] = None
    source_code: Optional[str] = None
    source_release: Optional[str] = None
    source_revision: Optional[str] = None
    auditors: Optional[str] = None
    acknowledgements: Optional[str] = None
    expiry: Optional[str] = None

    @field_validator("project_url", "source_code")
    @classmethod
    def validate_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


# --- Helper Functions ---

def format_lamports(lamports: int) -> str:
    """`1000000000` -> `1 SOL (1000000000 lamports)`"""
    sol = (Decimal(lamports) / LAMPORTS_PER_SOL).normalize()
    return f"{sol:f} SOL ({lamports} lamports)"


def to_json_text(value: Any) -> str:
    """Pretty JSON for plain data or solders objects (which carry `to_json`)."""
    if value is not None and hasattr(value, "to_json"):
        value = json.loads(value.to_json())
    return json.dumps(value, indent=2)


def parse_pubkey(value: str, label: str = "public key") -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as e:
        raise UpstreamError(f"Invalid {label}: {value}") from e


def parse_signature(value: str) -> Signature:
    try:
        return Signature.from_string(value)
    except ValueError as e:
        raise UpstreamError(f"Invalid signature: {value}") from e


def security_txt(fields: Dict[str, str]) -> str:
    """Rust string literal for the `.security.txt` section, with `\\0` separators."""
    def escape(text: str) -> str:
        return text.replace("\\", "\\\\").replace('"', '\\"')

    content = "".join(f"{key}\\0{escape(value)}\\0" for key, value in fields.items())
    return f'"=======BEGIN SECURITY.TXT V1=======\\0{content}=======END SECURITY.TXT V1=======\\0"'


def security_txt_macro(literal: str) -> str:
    return (
        "#[macro_export]\n"
        "macro_rules! security_txt {\n"
        "    () => {\n"
        '        #[cfg_attr(target_arch = "bpf", link_section = ".security.txt")]\n'
        "        #[allow(dead_code)]\n"
        "        #[no_mangle]\n"
        f"        pub static security_txt: &str = {literal};\n"
        "    };\n"
        "}\n"
        "\n"
        "security_txt!();"
    )


async def get_program_data_address(client: AsyncClient, program_id: Pubkey) -> Pubkey:
    """Reads the ProgramData address from an upgradeable program account."""
    program_info = (await client.get_account_info(program_id)).value
    if program_info is None:
        raise UpstreamError("Program not found")
    data = bytes(program_info.data)
    if program_info.owner != BPF_LOADER_UPGRADEABLE_PROGRAM_ID or len(data) < 36:
        raise UpstreamError(f"{program_id} is not an upgradeable program")
    # enum tag (u32) | programdata address
    return Pubkey.from_bytes(data[4:36])


def upgrade_authority(program_data: bytes) -> Optional[Pubkey]:
    # enum tag (u32) | slot (u64) | Option<Pubkey>
    if len(program_data) < 45 or program_data[12] == 0:
        return None
    return Pubkey.from_bytes(program_data[13:45])


# --- Tools ---

def register_solana_tools(registry: ToolRegistry, settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> None:
    """Registers every Solana tool on `registry`.

    `http_client` is shared by the HTTP-backed tools when given; otherwise each
    call opens its own client.
    """

    @asynccontextmanager
    async def http_session() -> AsyncIterator[httpx.AsyncClient]:
        if http_client is not None:
            yield http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def fetch_osec_status(program_id: str) -> Dict[str, Any]:
        async with http_session() as http:
            response = await http.get(f"{OSEC_VERIFY_URL}/{program_id}")
            response.raise_for_status()
            return response.json()

    @registry.tool(
        "getAccountInfo",
        "Used to look up account info by public key (32 byte base58 encoded address)",
        PublicKeyInput,
    )
    async def get_account_info(args: PublicKeyInput):
        pubkey = parse_pubkey(args.public_key)
        async with AsyncClient(settings.rpc_endpoint) as client:
            resp = await client.get_account_info(pubkey)
        return text_result(to_json_text(resp.value))

    @registry.tool(
        "getBalance",
        "Used to look up balance by public key (32 byte base58 encoded address)",
        PublicKeyInput,
    )
    async def get_balance(args: PublicKeyInput):
        pubkey = parse_pubkey(args.public_key)
        async with AsyncClient(settings.rpc_endpoint) as client:
            resp = await client.get_balance(pubkey)
        return text_result(format_lamports(resp.value))

    @registry.tool(
        "getMinimumBalanceForRentExemption",
        "Used to look up minimum balance required for rent exemption by data size",
        RentExemptionInput,
    )
    async def get_minimum_balance_for_rent_exemption(args: RentExemptionInput):
        async with AsyncClient(settings.rpc_endpoint) as client:
            resp = await client.get_minimum_balance_for_rent_exemption(args.data_size)
        return text_result(format_lamports(resp.value))

    @registry.tool(
        "getTransaction",
        "Used to look up transaction by signature (64 byte base58 encoded string)",
        SignatureInput,
    )
    async def get_transaction(args: SignatureInput):
        signature = parse_signature(args.signature)
        async with AsyncClient(settings.rpc_endpoint) as client:
            resp = await client.get_transaction(
                signature, encoding="jsonParsed", max_supported_transaction_version=0
            )
        if resp.value is None:
            raise UpstreamError(f"Transaction {args.signature} not found")
        return text_result(to_json_text(resp.value))

    @registry.tool("getPriorityFee", "Used to look up priority fee Transaction Info", PriorityFeeInput)
    async def get_priority_fee(args: PriorityFeeInput):
        if not settings.helius_rpc_url:
            raise UpstreamError("HELIUS_RPC_URL environment variable is not set")
        payload = {
            "jsonrpc": "2.0",
            "id": "1",
            "method": "getPriorityFeeEstimate",
            "params": [
                {
                    "transaction": args.serealized_transaction,
                    "options": {"includeAllPriorityFeeLevels": True},
                }
            ],
        }
        async with http_session() as http:
            response = await http.post(settings.helius_rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        if body.get("error"):
            raise UpstreamError(body["error"].get("message", str(body["error"])))
        return text_result(json.dumps(body.get("result"), indent=2))

    @registry.tool("generateSecurityTxt", "Generate security.txt content for Solana programs", SecurityTxtInput)
    async def generate_security_txt(args: SecurityTxtInput):
        literal = security_txt(args.model_dump(exclude_none=True))
        return text_result(
            "Generated security.txt content:",
            literal,
            "Generated macro:",
            security_txt_macro(literal),
        )

    @registry.tool("getProgramIdl", "Used to fetch the IDL for a Solana program", ProgramInput)
    async def get_program_idl(args: ProgramInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        async with AsyncClient(settings.rpc_endpoint) as client:
            idl = await idl_utils.fetch_idl(client, program_id)
        if idl is None:
            return text_result(NO_IDL_FOUND)
        return text_result(json.dumps(idl, indent=2))

    @registry.tool(
        "createGPAFilters",
        "Used to create get Program Accounts filters for a Solana program based on its IDL",
        ProgramInput,
    )
    async def create_gpa_filters(args: ProgramInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        async with AsyncClient(settings.rpc_endpoint) as client:
            idl = await idl_utils.fetch_idl(client, program_id)
        if idl is None:
            raise IdlError("IDL not found for the given program ID")

        filters = idl_utils.build_gpa_filters(idl)
        diagnostics.info(f"Generated {len(filters)} GPA filters for program {args.program_id}")
        return text_result(
            "GPA Filters:",
            json.dumps(filters, indent=2),
            "\nAccount Types:",
            json.dumps([account["name"] for account in idl.get("accounts", [])], indent=2),
        )

    @registry.tool("testProgramIdl", "Test a Solana program IDL with input JSON", ProgramIdlTestInput)
    async def test_program_idl(args: ProgramIdlTestInput):
        diagnostics.info(json.dumps({
            "programId": args.program_id,
            "inputJson": args.input_json,
            "instructionName": args.instruction_name,
        }))
        if not settings.payer_private_key:
            raise UpstreamError("PAYER_PRIVATE_KEY not found in environment variables")
        try:
            payer = Keypair.from_base58_string(settings.payer_private_key)
        except ValueError as e:
            raise UpstreamError("PAYER_PRIVATE_KEY is not a valid base58 keypair") from e

        program_id = parse_pubkey(args.program_id, "program ID")
        input_data = idl_utils.parse_instruction_input(args.input_json)

        async with AsyncClient(settings.rpc_endpoint) as client:
            idl = await idl_utils.fetch_idl(client, program_id)
            if idl is None:
                return text_result(NO_IDL_FOUND)

            ix = idl_utils.find_instruction(idl, args.instruction_name)
            if ix is None:
                return text_result(f"Instruction '{args.instruction_name}' not found in IDL.")

            instruction = idl_utils.build_instruction(program_id, ix, input_data, payer.pubkey())
            diagnostics.info(f"instruction {instruction}")

            blockhash = (await client.get_latest_blockhash()).value.blockhash
            message = Message.new_with_blockhash([instruction], payer.pubkey(), blockhash)
            simulation = await client.simulate_transaction(Transaction.new_unsigned(message), sig_verify=False)

        return text_result("Simulation result:", to_json_text(simulation.value))

    @registry.tool("lookupProgramAuth", "Checks the program authority for a given program ID", ProgramInput)
    async def lookup_program_auth(args: ProgramInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        async with AsyncClient(settings.rpc_endpoint) as client:
            program_data_address = await get_program_data_address(client, program_id)
            program_data = (await client.get_account_info(program_data_address)).value
        if program_data is None:
            raise UpstreamError("Program data not found")

        authority = upgrade_authority(bytes(program_data.data))
        if authority is None:
            return text_result("Program Authority: none (program is immutable)")
        return text_result(f"Program Authority: {authority}")

    @registry.tool("checkupProgram", "Checks if a program has verified build, security.txt", ProgramInput)
    async def checkup_program(args: ProgramInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        async with AsyncClient(settings.rpc_endpoint) as client:
            program_info = (await client.get_account_info(program_id)).value
        if program_info is None:
            raise UpstreamError("Program not found")

        status = await fetch_osec_status(args.program_id)
        return text_result(
            f"Verified Build: {str(bool(status.get('is_verified'))).lower()}",
            f"Security.txt: {json.dumps(status, indent=2)}",
        )

    @registry.tool("checkProgramDeployment", "Checks various aspects of a Solana program deployment", ProgramInput)
    async def check_program_deployment(args: ProgramInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        report: List[str] = []

        async with AsyncClient(settings.rpc_endpoint) as client:
            program_info = (await client.get_account_info(program_id)).value
            if program_info is None:
                raise UpstreamError(f"Program with ID {args.program_id} not found.")
            report.append(f"Program found: {args.program_id}")

            try:
                idl = await idl_utils.fetch_idl(client, program_id)
            except Exception as e:
                diagnostics.info(f"IDL lookup failed for {args.program_id}: {e}")
                idl = None
            report.append("IDL: Found" if idl is not None else "IDL: Not found or not accessible")

            program_data_address = await get_program_data_address(client, program_id)
            program_data = (await client.get_account_info(program_data_address)).value
            if program_data is None:
                raise UpstreamError(f"Program data not found for {args.program_id}.")

            authority = upgrade_authority(bytes(program_data.data))
            if authority is None:
                report.append("upgradeAuthorityPubkey: none (immutable)")
            else:
                report.append(f"upgradeAuthorityPubkey: {authority}")
                # Off-curve authorities are PDAs, typically a multisig vault
                report.append(f"Multisig: {'No' if authority.is_on_curve() else 'Yes'}")

            signatures = (await client.get_signatures_for_address(program_id, limit=10)).value

        try:
            status = await fetch_osec_status(args.program_id)
            if status.get("is_verified"):
                report.append(f"Security info: {json.dumps(status, indent=2)}")
            else:
                report.append("Security info: Not found on verify.osec.io")
        except (httpx.HTTPError, ValueError) as e:
            diagnostics.info(f"verify.osec.io lookup failed for {args.program_id}: {e}")
            report.append("Security info: Error checking verify.osec.io")

        if idl is not None:
            fields = idl_utils.sensitive_args(idl)
            if fields:
                report.append("Warning: Potentially sensitive data in instruction arguments:")
                report.extend(f"  - {field['name']} ({json.dumps(field['type'])})" for field in fields)
            else:
                report.append("No obvious sensitive data found in instruction arguments")

        report.append(f"Program size: {len(bytes(program_data.data))} bytes")

        if signatures and signatures[0].block_time:
            latest = datetime.fromtimestamp(signatures[0].block_time, tz=timezone.utc).isoformat()
        else:
            latest = "No recent activity"
        report.append(f"Latest activity: {latest}")

        return text_result("Program Deployment Check Report:", "\n".join(report))

    @registry.tool("createCPI", "Generate an example CPI statement for a given Solana program", ProgramInstructionInput)
    async def create_cpi(args: ProgramInstructionInput):
        program_id = parse_pubkey(args.program_id, "program ID")
        async with AsyncClient(settings.rpc_endpoint) as client:
            idl = await idl_utils.fetch_idl(client, program_id)
        if idl is None:
            return text_result(NO_IDL_FOUND)

        ix = idl_utils.find_instruction(idl, args.instruction_name)
        if ix is None:
            return text_result(f"Instruction '{args.instruction_name}' not found in IDL.")

        return text_result(
            "CPI Example:",
            idl_utils.render_cpi_example(idl, ix),
            "Program IDL:",
            json.dumps(idl, indent=2),
            f"Cluster: {settings.cluster}",
        )

    @registry.tool("getDuneSolanaData", "Fetch Solana program data from Dune Analytics", DuneInput)
    async def get_dune_solana_data(args: DuneInput):
        if not settings.dune_api_key:
            raise UpstreamError("DUNE_API_KEY is not set in the environment variables")

        async with http_session() as http:
            dune = DuneClient(settings.dune_api_key, http)
            top_signers, program_calls, cpi_program_calls = await dune.run_queries([
                (TOP_SIGNERS_QUERY_ID, {"program id": args.program_id, "days": args.days}),
                (PROGRAM_CALLS_QUERY_ID, {"program id": args.program_id, "days": args.days}),
                (CPI_PROGRAM_CALLS_QUERY_ID, {"program id": args.program_id}),
            ])

        if top_signers is None or program_calls is None or cpi_program_calls is None:
            return text_result("No data returned from Dune Analytics.")

        return text_result(
            f"Dune Analytics data for Solana program {args.program_id} over the last {args.days} days:",
            "Top 1000 Signers:",
            json.dumps(top_signers, indent=2),
            "Program Calls:",
            json.dumps(program_calls, indent=2),
            "CPI Program Calls:",
            json.dumps(cpi_program_calls, indent=2),
        )
