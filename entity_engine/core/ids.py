"""
ID security hooks.

The service never decides how ids are obfuscated, only when the hooks run:
decoding happens right before an id reaches an adapter, encoding only at the
caller-facing boundary.
"""

from typing import Any

from .types import PrimaryField


class IdCodec:
    """
    Encode/decode hook pair for secure ids. Identity by default.

    Subclass and override both methods to expose obfuscated ids:

        class HashidsCodec(IdCodec):
            def encode_id(self, id):
                return hashids.encode(id)

            def decode_id(self, id):
                return hashids.decode(id)[0]
    """

    def encode_id(self, id: Any) -> Any:
        return id

    def decode_id(self, id: Any) -> Any:
        return id


def sanitize_id(
    id: Any,
    codec: IdCodec,
    primary_field: PrimaryField,
    secure_id: bool | None = None,
) -> Any:
    """
    Return the id an adapter should see.

    Args:
        id: Id exactly as supplied by the caller
        codec: Codec used to decode secure ids
        primary_field: Primary field descriptor (its ``secure`` flag is the default policy)
        secure_id: Per-call override; True decodes, False passes through

    Returns:
        Decoded or untouched id
    """
    if secure_id is not None:
        return codec.decode_id(id) if secure_id else id
    if primary_field.secure:
        return codec.decode_id(id)
    return id
