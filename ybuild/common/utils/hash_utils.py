import hashlib
from typing import Any, Union, List
import json


def compute_hash(
    data: Union[str, bytes],
    algorithm: str = "sha256",
) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")

    hash_obj = hashlib.new(algorithm)
    hash_obj.update(data)

    return hash_obj.hexdigest()


def compute_signature(
    *components: Any,
    algorithm: str = "sha256",
    separator: str = "|",
) -> str:
    normalized_parts: List[str] = []

    for component in components:
        if component is None:
            normalized_parts.append("null")
        elif isinstance(component, (dict, list)):
            normalized_parts.append(json.dumps(component, sort_keys=True, default=str))
        elif isinstance(component, bytes):
            normalized_parts.append(component.hex())
        else:
            normalized_parts.append(str(component))

    combined = separator.join(normalized_parts)

    return compute_hash(combined, algorithm)
