#!/usr/bin/env python3
"""Print the source and fields packed into one or more quote ids."""

import sys
from typing import List

from quote_id import decode


def describe(quote_id: int) -> List[str]:
    decoded = decode(quote_id)
    lines = [f"ID: {quote_id}", f"Source: {decoded.source.name}"]
    fields = decoded.fields
    if "form_id" in fields:
        lines.append(f"FormId: {fields['form_id']:08X}")
        lines.append(f"ResponseNumber: {fields['response_number']}")
    elif "ship_number" in fields:
        lines.append(f"ShipNumber: {fields['ship_number']}")
        lines.append(f"Index: {fields['index']}")
    else:
        lines.append(f"Index: {fields['index']}")
    return lines


def main(argv: List[str] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print("Usage: decode_quote_id.py <id> [<id> ...]", file=sys.stderr)
        return 1

    exit_code = 0
    for i, arg in enumerate(args):
        if i > 0:
            print()
        try:
            lines = describe(int(arg))
        except ValueError:
            print(f'Could not parse "{arg}".', file=sys.stderr)
            exit_code = 1
            continue
        for line in lines:
            print(line)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
