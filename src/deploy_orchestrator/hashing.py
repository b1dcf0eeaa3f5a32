"""Change detection hashes for deployment units."""

import json
from typing import Any, Sequence

from web3 import Web3


def canonical_args(value: Any) -> Any:
    """JSON-ready form of constructor args: tuples become lists, bytes become 0x-hex."""
    if isinstance(value, (list, tuple)):
        return [canonical_args(v) for v in value]
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value


def constructor_args_hash(args: Sequence[Any]) -> str:
    """keccak256 of the canonical JSON encoding of resolved constructor args."""
    encoded = json.dumps(canonical_args(list(args)), sort_keys=True, separators=(",", ":"))
    return Web3.to_hex(Web3.keccak(text=encoded))


def bytecode_hash(bytecode: str) -> str:
    """keccak256 of the creation bytecode."""
    return Web3.to_hex(Web3.keccak(hexstr=bytecode))
