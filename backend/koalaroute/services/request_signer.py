"""Request signer — MD5 signatures for the signed metasearch search API.

The upstream verifies a signature built from every parameter value of the
request body. Values are collected by walking the body with object keys in
ascending alphabetical order at every nesting level (arrays keep their
order), then joined with ``:`` behind the shared secret:

    md5("<secret>:<v1>:<v2>:...")

For the flight search body this yields

    host, locale, marker, passengers.adults, passengers.children,
    passengers.infants, segments[i].date, segments[i].destination,
    segments[i].origin, ..., trip_class, user_ip
"""

import hashlib
from typing import Any

SIGNATURE_FIELD = "signature"


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten_values(params: Any) -> list[str]:
    """Collect scalar values in canonical (alphabetical key) order."""
    values: list[str] = []

    def visit(node: Any) -> None:
        if node is None:
            return
        if isinstance(node, dict):
            for key in sorted(node):
                visit(node[key])
        elif isinstance(node, (list, tuple)):
            for item in node:
                visit(item)
        else:
            values.append(_scalar(node))

    if isinstance(params, dict):
        params = {k: v for k, v in params.items() if k != SIGNATURE_FIELD}
    visit(params)
    return values


def sign(request_params: dict[str, Any], secret: str) -> str:
    """Return the hex MD5 signature for ``request_params``."""
    values = flatten_values(request_params)
    payload = f"{secret}:{':'.join(values)}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
