"""
Guacamole wire protocol instructions.

An instruction is a comma-separated list of length-prefixed elements ended
by a semicolon, the first element being the opcode:

    4.size,4.1024,3.768,2.96;

Lengths count Unicode code points, not bytes.
"""

from __future__ import annotations

INTERNAL_OPCODE = ""


class ProtocolError(Exception):
    """Raised on malformed Guacamole instructions."""


def encode_instruction(opcode: str, *args: object) -> str:
    elements = [opcode, *(str(arg) for arg in args)]
    return ",".join(f"{len(element)}.{element}" for element in elements) + ";"


def parse_instructions(buffer: str, limit: int | None = None) -> tuple[list[list[str]], int]:
    """
    Parse complete instructions at the start of ``buffer``, at most ``limit``.

    Returns:
        (instructions, consumed) where ``buffer[consumed:]`` is the
        unparsed remainder

    Raises:
        ProtocolError: If the buffer is not a valid instruction stream
    """
    instructions: list[list[str]] = []
    consumed = 0
    pos = 0
    elements: list[str] = []

    while pos < len(buffer) and (limit is None or len(instructions) < limit):
        dot = buffer.find(".", pos)
        if dot == -1:
            if not _is_length(buffer[pos:], allow_empty=True):
                raise ProtocolError(f"invalid element length: {buffer[pos:pos + 16]!r}")
            break

        length_text = buffer[pos:dot]
        if not _is_length(length_text):
            raise ProtocolError(f"invalid element length: {length_text[:16]!r}")

        start = dot + 1
        end = start + int(length_text)
        if end >= len(buffer):
            break

        elements.append(buffer[start:end])
        terminator = buffer[end]
        pos = end + 1
        if terminator == ";":
            instructions.append(elements)
            elements = []
            consumed = pos
        elif terminator != ",":
            raise ProtocolError(f"unexpected terminator: {terminator!r}")

    return instructions, consumed


def _is_length(text: str, allow_empty: bool = False) -> bool:
    if not text:
        return allow_empty
    return text.isascii() and text.isdigit()
