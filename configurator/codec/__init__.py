"""Prompt codec for the geometry service."""

from configurator.codec.parser import DecodedPrompt, PromptFragment, decode_prompt
from configurator.codec.prompt import encode_prompt, encode_zone

__all__ = [
    "DecodedPrompt",
    "PromptFragment",
    "decode_prompt",
    "encode_prompt",
    "encode_zone",
]
