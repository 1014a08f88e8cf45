"""
Prompt registry and the Solana prompt templates.

Prompts are purely textual: rendering substitutes the arguments into a fixed
template and returns user messages. No external calls are made.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from mcp.types import GetPromptResult, PromptArgument, PromptMessage, TextContent
from mcp.types import Prompt as PromptDefinition

from .errors import DuplicateNameError, UnknownPromptError, ValidationError


@dataclass(frozen=True)
class Prompt:
    name: str
    description: str
    template: Callable[..., str]
    arguments: List[PromptArgument] = field(default_factory=list)

    def definition(self) -> PromptDefinition:
        return PromptDefinition(name=self.name, description=self.description, arguments=self.arguments)


class PromptRegistry:
    def __init__(self) -> None:
        self._prompts: Dict[str, Prompt] = {}

    def __len__(self) -> int:
        return len(self._prompts)

    def register(self, prompt: Prompt) -> Prompt:
        if prompt.name in self._prompts:
            raise DuplicateNameError(f"Prompt '{prompt.name}' is already registered")
        self._prompts[prompt.name] = prompt
        return prompt

    def list_prompts(self) -> List[PromptDefinition]:
        return [prompt.definition() for prompt in self._prompts.values()]

    def render(self, name: str, params: Optional[Dict[str, str]] = None) -> GetPromptResult:
        prompt = self._prompts.get(name)
        if prompt is None:
            raise UnknownPromptError(name)

        params = params or {}
        values = {}
        for argument in prompt.arguments:
            value = params.get(argument.name)
            if value is None:
                if argument.required:
                    raise ValidationError(argument.name, "required argument is missing")
                continue
            if not isinstance(value, str):
                raise ValidationError(argument.name, "must be a string")
            values[argument.name] = value

        text = prompt.template(**values)
        return GetPromptResult(
            description=prompt.description,
            messages=[PromptMessage(role="user", content=TextContent(type="text", text=text))],
        )


def _signature_argument() -> PromptArgument:
    return PromptArgument(name="signature", description="Transaction signature (base58)", required=True)


def register_solana_prompts(registry: PromptRegistry) -> None:
    registry.register(Prompt(
        name="calculate-storage-deposit",
        description="Calculate storage deposit for a specified number of bytes",
        arguments=[PromptArgument(name="bytes", description="Number of bytes to store", required=True)],
        template=lambda bytes: (
            f"Calculate the SOL amount needed to store {bytes} bytes of data on Solana "
            f"using getMinimumBalanceForRentExemption."
        ),
    ))
    registry.register(Prompt(
        name="minimum-amount-of-sol-for-storage",
        description="Calculate the minimum amount of SOL needed for storing 0 bytes on-chain",
        template=lambda: (
            "Calculate the amount of SOL needed to store 0 bytes of data on Solana using "
            "getMinimumBalanceForRentExemption & present it to the user as the minimum cost "
            "for storing any data on Solana."
        ),
    ))
    registry.register(Prompt(
        name="why-did-my-transaction-fail",
        description="Look up the given transaction and inspect its logs to figure out why it failed",
        arguments=[_signature_argument()],
        template=lambda signature: (
            f"Look up the transaction with signature {signature} and inspect its logs "
            f"to figure out why it failed."
        ),
    ))
    registry.register(Prompt(
        name="how-much-did-this-transaction-cost",
        description="Fetch the transaction by signature, and break down cost & priority fees",
        arguments=[_signature_argument()],
        template=lambda signature: (
            f"Calculate the network fee for the transaction with signature {signature} by fetching it "
            f"and inspecting the 'fee' field in 'meta'. Base fee is 0.000005 sol per signature "
            f"(also provided as array at the end). So priority fee is fee - (numSignatures * 0.000005). "
            f"Please provide the base fee and the priority fee."
        ),
    ))
    registry.register(Prompt(
        name="what-happened-in-transaction",
        description="Look up the given transaction and inspect its logs & instructions to figure out what happened",
        arguments=[_signature_argument()],
        template=lambda signature: (
            f"Look up the transaction with signature {signature} and inspect its logs & instructions "
            f"to figure out what happened."
        ),
    ))
